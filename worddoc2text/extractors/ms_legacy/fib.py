"""
File Information Block
======================

The FIB sits at offset 0 of the WordDocument stream and describes where the
document text and its tables live.

Two CLX locations are read:

    - 0x9A / 0x9E: CLX offset and size inside the WordDocument stream, the
      layout the inline piece table decoder works with
    - 0x1A2 / 0x1A6: fcClx / lcbClx of FibRgFcLcb97, pointing into the table
      stream (0Table or 1Table, selected by the fWhichTblStm flag)

No validation beyond bounds checking happens here. A wrong identifier is
recorded in ``Fib.identifier`` and left for the callers to judge.
"""

import logging
from dataclasses import dataclass

from worddoc2text.exceptions import TruncatedStructureError
from worddoc2text.extractors.ms_legacy.byte_scanner import u16, u32

logger = logging.getLogger(__name__)

FIB_MAGIC_WORD97 = 0xA5EC

FIB_IDENT_OFFSET = 0x00
FIB_VERSION_OFFSET = 0x02
FIB_FLAGS_OFFSET = 0x0A
FIB_FC_MIN_OFFSET = 0x18
FIB_FC_MAC_OFFSET = 0x1C
FIB_CCP_TEXT_OFFSET = 0x4C
FIB_FC_CLX_OFFSET = 0x9A
FIB_LCB_CLX_OFFSET = 0x9E
FIB_TABLE_FC_CLX_OFFSET = 0x1A2
FIB_TABLE_LCB_CLX_OFFSET = 0x1A6

FIB_ENCRYPTED_FLAG = 0x0100  # fEncrypted
FIB_TABLE_STREAM_FLAG = 0x0200  # fWhichTblStm: 1Table instead of 0Table

MIN_FIB_SIZE = 0x20


@dataclass(frozen=True)
class Fib:
    identifier: int
    version: int
    fc_min: int
    fc_mac: int
    fc_clx: int
    lcb_clx: int
    flags: int = 0
    ccp_text: int = 0
    table_fc_clx: int = 0
    table_lcb_clx: int = 0

    @property
    def is_word_document(self) -> bool:
        return self.identifier == FIB_MAGIC_WORD97

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & FIB_ENCRYPTED_FLAG)

    @property
    def table_stream_name(self) -> str:
        return "1Table" if self.flags & FIB_TABLE_STREAM_FLAG else "0Table"


def _optional_u32(stream: bytes, offset: int) -> int:
    if offset + 4 > len(stream):
        return 0
    return u32(stream, offset)


def parse_fib(stream: bytes) -> Fib:
    """
    Read the FIB fields needed for text extraction.

    Fields past the end of a short stream read as 0; only a stream too
    short to hold the FIB base is rejected.

    Raises:
        TruncatedStructureError: The stream is shorter than the FIB base.
    """
    if len(stream) < MIN_FIB_SIZE:
        raise TruncatedStructureError(
            f"WordDocument stream too short for a FIB ({len(stream)} bytes)"
        )

    fib = Fib(
        identifier=u16(stream, FIB_IDENT_OFFSET),
        version=u16(stream, FIB_VERSION_OFFSET),
        flags=u16(stream, FIB_FLAGS_OFFSET),
        fc_min=u32(stream, FIB_FC_MIN_OFFSET),
        fc_mac=u32(stream, FIB_FC_MAC_OFFSET),
        ccp_text=_optional_u32(stream, FIB_CCP_TEXT_OFFSET),
        fc_clx=_optional_u32(stream, FIB_FC_CLX_OFFSET),
        lcb_clx=_optional_u32(stream, FIB_LCB_CLX_OFFSET),
        table_fc_clx=_optional_u32(stream, FIB_TABLE_FC_CLX_OFFSET),
        table_lcb_clx=_optional_u32(stream, FIB_TABLE_LCB_CLX_OFFSET),
    )

    if not fib.is_word_document:
        logger.debug(f"Unexpected FIB identifier {fib.identifier:#06x}")
    logger.debug(
        f"FIB parsed: version={fib.version}, text range={fib.fc_min}-{fib.fc_mac}, "
        f"clx={fib.fc_clx}+{fib.lcb_clx}"
    )
    return fib
