"""
Byte Scanning Primitives
========================

Stateless helpers shared by the container reader, the piece table decoder
and the heuristic scanners. All functions take a bytes-like buffer and
never modify it.

Text recognised by the scanners is deliberately narrow: printable ASCII
(0x20-0x7E) plus tab, carriage return and line feed. Carriage return and
line feed are both reported as a newline.
"""

import re
import struct
from typing import Iterator, Tuple

from worddoc2text.exceptions import TruncatedStructureError

PRINTABLE_MIN = 0x20
PRINTABLE_MAX = 0x7E

TAB = 0x09
LF = 0x0A
CR = 0x0D

_NEWLINES = (CR, LF)


def u16(data: bytes, offset: int) -> int:
    """Read a little-endian uint16, raising if the field leaves the buffer."""
    if offset < 0 or offset + 2 > len(data):
        raise TruncatedStructureError(
            f"uint16 at offset {offset} is outside a {len(data)} byte buffer"
        )
    return struct.unpack_from("<H", data, offset)[0]


def u32(data: bytes, offset: int) -> int:
    """Read a little-endian uint32, raising if the field leaves the buffer."""
    if offset < 0 or offset + 4 > len(data):
        raise TruncatedStructureError(
            f"uint32 at offset {offset} is outside a {len(data)} byte buffer"
        )
    return struct.unpack_from("<I", data, offset)[0]


def is_printable(byte: int) -> bool:
    return PRINTABLE_MIN <= byte <= PRINTABLE_MAX


def _text_char(unit: int) -> str | None:
    """Map a byte or UTF-16 code unit to its text character, None if not text."""
    if PRINTABLE_MIN <= unit <= PRINTABLE_MAX:
        return chr(unit)
    if unit in _NEWLINES:
        return "\n"
    if unit == TAB:
        return "\t"
    return None


def decode_utf16_name(field: bytes) -> str:
    """Decode a UTF-16LE name field, stopping at the first null code unit."""
    end = len(field) - len(field) % 2
    for i in range(0, end, 2):
        if field[i] == 0 and field[i + 1] == 0:
            end = i
            break
    return bytes(field[:end]).decode("utf-16-le", errors="ignore")


def read_utf16_run(data: bytes, start: int, max_chars: int) -> str:
    """
    Decode UTF-16LE text forward from ``start``.

    Stops at the first code unit that is not printable ASCII, tab, CR or LF,
    at the end of the buffer, or after ``max_chars`` characters.
    """
    chars = []
    pos = max(start, 0)
    last = len(data) - 1
    while pos < last and len(chars) < max_chars:
        char = _text_char(data[pos] | (data[pos + 1] << 8))
        if char is None:
            break
        chars.append(char)
        pos += 2
    return "".join(chars)


def read_utf16_run_backward(data: bytes, end: int, max_chars: int) -> str:
    """Decode UTF-16LE text that ends right before ``end``, walking backwards."""
    chars = []
    pos = min(end, len(data)) - 2
    while pos >= 0 and len(chars) < max_chars:
        char = _text_char(data[pos] | (data[pos + 1] << 8))
        if char is None:
            break
        chars.append(char)
        pos -= 2
    chars.reverse()
    return "".join(chars)


def read_null_padded_run(data: bytes, start: int, max_bytes: int) -> Tuple[str, int]:
    """
    Read a text run in which 0x00 bytes are padding.

    Returns the decoded text and the position of the first byte that was
    not consumed. The run stops at any byte that is neither null nor text,
    or after ``max_bytes`` bytes.
    """
    chars = []
    pos = start
    limit = min(len(data), start + max_bytes)
    while pos < limit:
        byte = data[pos]
        if byte == 0:
            pos += 1
            continue
        char = _text_char(byte)
        if char is None:
            break
        chars.append(char)
        pos += 1
    return "".join(chars), pos


def iter_printable_runs(data: bytes, min_length: int) -> Iterator[Tuple[int, str]]:
    """Yield ``(offset, text)`` for maximal 8-bit text runs longer than ``min_length``."""
    pattern = re.compile(rb"[\x20-\x7e\t\r\n]{%d,}" % (min_length + 1))
    for match in pattern.finditer(data):
        yield match.start(), match.group().decode("ascii")


def iter_utf16_runs(
    data: bytes, min_chars: int, max_chars: int
) -> Iterator[Tuple[int, str]]:
    """
    Yield ``(offset, text)`` for interleaved ``(text byte, 0x00)`` runs.

    Runs are found at any alignment, so text whose leading byte is not
    preceded by a null is still recovered. Runs longer than ``max_chars``
    are reported in several pieces.
    """
    pattern = re.compile(rb"(?:[\x20-\x7e\t\r\n]\x00){%d,%d}" % (min_chars, max_chars))
    for match in pattern.finditer(data):
        yield match.start(), match.group().decode("utf-16-le")
