"""
Piece Table Decoding
====================

Word stores the document text as a list of pieces. Each piece maps a range
of character positions (CPs) to a run of bytes somewhere in the file, either
as 8-bit text or as UTF-16LE. The list lives in the CLX structure referenced
by the FIB.

Two CLX layouts are decoded:

Inline CLX (WordDocument stream, FIB offsets 0x9A / 0x9E)
    - Blocks start with a tag byte: 1 skips a block with a 4-byte length,
      2 is the piece table with a 4-byte length
    - Piece table: (n + 1) uint32 CPs, then n 8-byte descriptors
      (uint32 fc, uint32 prm)
    - Bit 30 of fc clear means UTF-16LE, the low 30 bits are a byte offset
      into the whole file
    - Only printable ASCII, tab and CR (as a newline) are kept

Table stream CLX (0Table / 1Table, FIB offsets 0x1A2 / 0x1A6)
    - Prc blocks: tag 1 with a 2-byte size
    - Pcdt: tag 2 with a 4-byte size, then (n + 1) CPs and n 8-byte Pcd
      (uint16 flags, uint32 fc, uint16 prm)
    - Bit 30 of fc set means cp1252 at (fc & 0x3FFFFFFF) / 2, otherwise
      UTF-16LE at fc; both are offsets into the WordDocument stream
    - Word control characters are mapped by ``clean_word_text``

Pieces whose byte span leaves the buffer are rejected instead of being read
partially. For a Word FIB with fcMac > fcMin, inline pieces must also lie
within [fcMin, fcMac).
"""

import logging
import re
import struct
from dataclasses import dataclass, replace
from typing import List, Tuple

from worddoc2text.exceptions import PieceTableDecodeError
from worddoc2text.extractors.ms_legacy.byte_scanner import u16, u32
from worddoc2text.extractors.ms_legacy.fib import Fib
from worddoc2text.extractors.ms_legacy.text_quality import clean_word_text
from worddoc2text.extractors.util.scan_limits import (
    DEFAULT_EXTRACTION_LIMITS,
    ExtractionLimits,
)

logger = logging.getLogger(__name__)

CLX_PRC = 0x01
CLX_PCDT = 0x02

FC_COMPRESSED_FLAG = 0x40000000
FC_OFFSET_MASK = 0x3FFFFFFF

PIECE_DESCRIPTOR_SIZE = 8

_NOT_INLINE_TEXT = re.compile(r"[^\x20-\x7e\t\r]")


@dataclass(frozen=True)
class Piece:
    cp_start: int
    cp_end: int
    storage_offset: int
    is_unicode: bool
    text: str = ""

    @property
    def char_count(self) -> int:
        return self.cp_end - self.cp_start

    @property
    def byte_length(self) -> int:
        return self.char_count * (2 if self.is_unicode else 1)


def _piece_array(
    buffer: bytes, data_offset: int, size: int, limits: ExtractionLimits
) -> Tuple[Tuple[int, ...], int, int]:
    """
    Read the CP array of a piece table.

    Returns the CPs, the offset of the first descriptor and the piece count.
    """
    if data_offset + size > len(buffer):
        raise PieceTableDecodeError(
            f"Piece table of {size} bytes at offset {data_offset} exceeds the stream"
        )
    count = (size - 4) // (4 + PIECE_DESCRIPTOR_SIZE) if size >= 4 else 0
    if count < 1:
        raise PieceTableDecodeError(f"Piece table of {size} bytes holds no pieces")
    if count > limits.max_pieces:
        raise PieceTableDecodeError(
            f"Piece table holds {count} pieces, limit is {limits.max_pieces}"
        )
    cps = struct.unpack_from(f"<{count + 1}I", buffer, data_offset)
    return cps, data_offset + (count + 1) * 4, count


def _locate_inline_piece_table(stream: bytes, fib: Fib) -> Tuple[int, int]:
    """Walk the inline CLX and return ``(data_offset, size)`` of the piece table."""
    if not fib.fc_clx:
        raise PieceTableDecodeError("FIB has no CLX offset")
    if fib.fc_clx >= len(stream):
        raise PieceTableDecodeError(
            f"CLX offset {fib.fc_clx} is beyond the {len(stream)} byte stream"
        )

    end = len(stream)
    if fib.lcb_clx:
        end = min(end, fib.fc_clx + fib.lcb_clx)

    offset = fib.fc_clx
    while offset + 5 <= end:
        tag = stream[offset]
        size = u32(stream, offset + 1)
        if tag == CLX_PCDT:
            return offset + 5, size
        if tag != CLX_PRC:
            raise PieceTableDecodeError(
                f"Unexpected CLX block tag {tag:#04x} at offset {offset}"
            )
        offset += 5 + size
    raise PieceTableDecodeError("CLX holds no piece table")


def _inline_text(document: bytes, piece: Piece) -> str:
    raw = document[piece.storage_offset : piece.storage_offset + piece.byte_length]
    if piece.is_unicode:
        text = raw.decode("utf-16-le", errors="replace")
    else:
        text = raw.decode("latin-1")
    return _NOT_INLINE_TEXT.sub("", text).replace("\r", "\n")


def _accept_piece(
    piece: Piece, buffer_size: int, text_range: Tuple[int, int] | None
) -> bool:
    if piece.cp_end < piece.cp_start:
        logger.debug(f"Rejecting piece with inverted CP range {piece.cp_start}-{piece.cp_end}")
        return False
    if piece.storage_offset + piece.byte_length > buffer_size:
        logger.debug(
            f"Rejecting piece at offset {piece.storage_offset}: "
            f"{piece.byte_length} bytes exceed the {buffer_size} byte buffer"
        )
        return False
    if text_range is not None:
        fc_min, fc_mac = text_range
        if piece.storage_offset < fc_min or piece.storage_offset + piece.byte_length > fc_mac:
            logger.debug(
                f"Rejecting piece at {piece.storage_offset}+{piece.byte_length}: "
                f"outside the text range {fc_min}-{fc_mac}"
            )
            return False
    return True


def decode_pieces(
    stream: bytes,
    document: bytes,
    fib: Fib,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> List[Piece]:
    """
    Decode the inline piece table into pieces sorted by ``cp_start``.

    ``stream`` is the WordDocument stream holding the CLX, ``document`` the
    whole file that piece offsets point into. Pieces holding only
    whitespace are dropped; the text of the others is kept as decoded.

    Raises:
        PieceTableDecodeError: No CLX, no piece table, or no usable piece.
    """
    data_offset, size = _locate_inline_piece_table(stream, fib)
    cps, descriptors, count = _piece_array(stream, data_offset, size, limits)

    text_range = None
    if fib.is_word_document and fib.fc_mac > fib.fc_min:
        text_range = (fib.fc_min, fib.fc_mac)

    pieces: List[Piece] = []
    for index in range(count):
        descriptor = descriptors + index * PIECE_DESCRIPTOR_SIZE
        fc = u32(stream, descriptor)
        piece = Piece(
            cp_start=cps[index],
            cp_end=cps[index + 1],
            storage_offset=fc & FC_OFFSET_MASK,
            is_unicode=not fc & FC_COMPRESSED_FLAG,
        )
        if not _accept_piece(piece, len(document), text_range):
            continue
        text = _inline_text(document, piece)
        if text.strip():
            pieces.append(replace(piece, text=text))

    if not pieces:
        raise PieceTableDecodeError(f"None of {count} pieces produced text")

    logger.debug(f"Decoded {len(pieces)} of {count} inline pieces")
    return sorted(pieces, key=lambda p: p.cp_start)


def decode_piece_table(
    stream: bytes,
    document: bytes,
    fib: Fib,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> str:
    """Text of the inline piece table, pieces in CP order joined by a blank line."""
    return "\n\n".join(
        piece.text for piece in decode_pieces(stream, document, fib, limits)
    ).strip()


def _locate_table_stream_piece_table(
    table_stream: bytes, fib: Fib
) -> Tuple[int, int]:
    if not fib.table_fc_clx or not fib.table_lcb_clx:
        raise PieceTableDecodeError("FIB has no table stream CLX")
    end = fib.table_fc_clx + fib.table_lcb_clx
    if end > len(table_stream):
        raise PieceTableDecodeError(
            f"CLX at {fib.table_fc_clx}+{fib.table_lcb_clx} exceeds the "
            f"{len(table_stream)} byte {fib.table_stream_name} stream"
        )

    offset = fib.table_fc_clx
    while offset < end:
        tag = table_stream[offset]
        if tag == CLX_PRC:
            offset += 3 + u16(table_stream, offset + 1)
        elif tag == CLX_PCDT:
            return offset + 5, u32(table_stream, offset + 1)
        else:
            raise PieceTableDecodeError(
                f"Unexpected CLX block tag {tag:#04x} at offset {offset}"
            )
    raise PieceTableDecodeError("CLX holds no piece table")


def decode_table_stream_pieces(
    stream: bytes,
    table_stream: bytes,
    fib: Fib,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> List[Piece]:
    """
    Decode the table stream piece table of a Word 97-2003 document.

    Only the main document text (the first ``ccp_text`` characters) is
    kept when the FIB records it.

    Raises:
        PieceTableDecodeError: No CLX, no piece table, or no usable piece.
    """
    data_offset, size = _locate_table_stream_piece_table(table_stream, fib)
    cps, descriptors, count = _piece_array(table_stream, data_offset, size, limits)

    pieces: List[Piece] = []
    for index in range(count):
        cp_start, cp_end = cps[index], cps[index + 1]
        if fib.ccp_text:
            if cp_start >= fib.ccp_text:
                break
            cp_end = min(cp_end, fib.ccp_text)

        fc = u32(table_stream, descriptors + index * PIECE_DESCRIPTOR_SIZE + 2)
        compressed = bool(fc & FC_COMPRESSED_FLAG)
        offset = fc & FC_OFFSET_MASK
        piece = Piece(
            cp_start=cp_start,
            cp_end=cp_end,
            storage_offset=offset // 2 if compressed else offset,
            is_unicode=not compressed,
        )
        if not _accept_piece(piece, len(stream), None):
            continue

        raw = stream[piece.storage_offset : piece.storage_offset + piece.byte_length]
        text = raw.decode("utf-16-le" if piece.is_unicode else "cp1252", errors="replace")
        pieces.append(replace(piece, text=text))

    if not pieces:
        raise PieceTableDecodeError(f"None of {count} pieces could be read")

    logger.debug(f"Decoded {len(pieces)} of {count} table stream pieces")
    return sorted(pieces, key=lambda p: p.cp_start)


def decode_table_stream_piece_table(
    stream: bytes,
    table_stream: bytes,
    fib: Fib,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> str:
    """Main document text from the table stream piece table, cleaned."""
    pieces = decode_table_stream_pieces(stream, table_stream, fib, limits)
    return clean_word_text("".join(piece.text for piece in pieces))
