"""
Compound File Reader
====================

Minimal reader for the OLE2 Compound File Binary Format (CFBF), the sector
based container used by legacy Office documents.

Only the subset needed to reach the streams of a Word document is
implemented: header, FAT (including DIFAT sectors), directory entries,
regular sector chains and the mini stream. Property sets, red-black tree
ordering and version 4 specific fields are ignored.

File Layout
-----------
    - Header: first 512 bytes, starts with the magic D0 CF 11 E0 A1 B1 1A E1
    - Sector n: located at byte offset (n + 1) * sector_size
    - FAT: array of uint32 "next sector" pointers, stored in FAT sectors
      listed by the header DIFAT (109 entries) and optional DIFAT sectors
    - Directory: chain of sectors holding 128-byte entries

Header Offsets
--------------
    - 0x1E: sector shift (sector size = 2 ** shift)
    - 0x20: mini sector shift
    - 0x2C: number of FAT sectors
    - 0x30: first directory sector
    - 0x38: mini stream cutoff size
    - 0x3C: first mini FAT sector
    - 0x44: first DIFAT sector
    - 0x48: number of DIFAT sectors
    - 0x4C: header DIFAT (109 x uint32)

Directory Entry Offsets
-----------------------
    - 0x00: name, UTF-16LE, 64 bytes, null terminated
    - 0x42: entry type (0 unused, 1 storage, 2 stream, 5 root)
    - 0x74: first sector of the stream
    - 0x78: stream size (low 32 bits)

Every chain walk is capped; cyclic or runaway chains raise SectorChainError
instead of looping. Directory and mini FAT chains stop at
``max_chain_sectors``; stream chains may run to the sector count their
declared size requires, which the file size bounds.
"""

import logging
import struct
from dataclasses import dataclass
from typing import List

from worddoc2text.exceptions import (
    CorruptCompoundDocumentError,
    NotACompoundDocumentError,
    SectorChainError,
    StreamNotFoundError,
)
from worddoc2text.extractors.ms_legacy.byte_scanner import decode_utf16_name, u16, u32
from worddoc2text.extractors.util.scan_limits import (
    DEFAULT_EXTRACTION_LIMITS,
    ExtractionLimits,
)

logger = logging.getLogger(__name__)

SIGNATURE = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"
HEADER_SIZE = 512
HEADER_DIFAT_OFFSET = 0x4C
HEADER_DIFAT_ENTRIES = 109
DIRECTORY_ENTRY_SIZE = 128

# Special FAT values
MAXREGSECT = 0xFFFFFFFA
DIFSECT = 0xFFFFFFFC
FATSECT = 0xFFFFFFFD
ENDOFCHAIN = 0xFFFFFFFE
FREESECT = 0xFFFFFFFF

# Directory entry types
ENTRY_UNUSED = 0
ENTRY_STREAM = 2
ENTRY_ROOT = 5


@dataclass(frozen=True)
class CFBFHeader:
    signature: bytes
    sector_size: int
    mini_sector_size: int
    fat_sector_count: int
    directory_first_sector: int
    mini_stream_cutoff: int
    mini_fat_first_sector: int
    fat_first_sector: int
    difat_first_sector: int = ENDOFCHAIN
    difat_sector_count: int = 0


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    entry_type: int
    first_sector: int
    stream_size: int


def sector_offset(sector: int, sector_size: int) -> int:
    """Byte offset of a regular sector; the header occupies sector -1."""
    return (sector + 1) * sector_size


def parse_header(data: bytes) -> CFBFHeader:
    """
    Validate the compound file signature and read the header fields.

    Raises:
        NotACompoundDocumentError: The first 8 bytes are not the OLE magic.
        CorruptCompoundDocumentError: The header is truncated or declares an
            impossible sector size.
    """
    if len(data) < len(SIGNATURE) or bytes(data[: len(SIGNATURE)]) != SIGNATURE:
        raise NotACompoundDocumentError(
            "Not an OLE compound document (signature mismatch)"
        )
    if len(data) < HEADER_SIZE:
        raise CorruptCompoundDocumentError(
            f"Compound document header truncated ({len(data)} bytes)"
        )

    sector_shift = u16(data, 0x1E)
    mini_sector_shift = u16(data, 0x20)
    if not 7 <= sector_shift <= 16 or mini_sector_shift > sector_shift:
        raise CorruptCompoundDocumentError(
            f"Invalid sector shift {sector_shift} / mini sector shift {mini_sector_shift}"
        )

    return CFBFHeader(
        signature=bytes(data[: len(SIGNATURE)]),
        sector_size=2**sector_shift,
        mini_sector_size=2**mini_sector_shift,
        fat_sector_count=u32(data, 0x2C),
        directory_first_sector=u32(data, 0x30),
        mini_stream_cutoff=u32(data, 0x38),
        mini_fat_first_sector=u32(data, 0x3C),
        fat_first_sector=u32(data, HEADER_DIFAT_OFFSET),
        difat_first_sector=u32(data, 0x44),
        difat_sector_count=u32(data, 0x48),
    )


def _read_sector_entries(data: bytes, sector: int, sector_size: int) -> List[int]:
    if sector > MAXREGSECT:
        raise CorruptCompoundDocumentError(f"Invalid sector number {sector:#x}")
    offset = sector_offset(sector, sector_size)
    if offset + sector_size > len(data):
        raise CorruptCompoundDocumentError(
            f"Sector {sector} lies outside the file ({len(data)} bytes)"
        )
    return list(struct.unpack_from(f"<{sector_size // 4}I", data, offset))


def _fat_sector_numbers(data: bytes, header: CFBFHeader) -> List[int]:
    numbers = []
    for i in range(HEADER_DIFAT_ENTRIES):
        sector = u32(data, HEADER_DIFAT_OFFSET + i * 4)
        if sector in (FREESECT, ENDOFCHAIN):
            continue
        numbers.append(sector)

    # Files with more than 109 FAT sectors continue the list in DIFAT sectors,
    # whose last entry links to the next DIFAT sector.
    difat_sector = header.difat_first_sector
    visited = set()
    for _ in range(header.difat_sector_count):
        if difat_sector > MAXREGSECT:
            break
        if difat_sector in visited:
            raise SectorChainError(f"DIFAT chain revisits sector {difat_sector}")
        visited.add(difat_sector)
        entries = _read_sector_entries(data, difat_sector, header.sector_size)
        numbers.extend(s for s in entries[:-1] if s not in (FREESECT, ENDOFCHAIN))
        difat_sector = entries[-1]

    if header.fat_sector_count:
        numbers = numbers[: header.fat_sector_count]
    return numbers


def read_fat(data: bytes, header: CFBFHeader) -> List[int]:
    """
    Read the File Allocation Table into one flat list.

    Each FAT sector holds ``sector_size / 4`` little-endian uint32 entries.

    Raises:
        CorruptCompoundDocumentError: No FAT sectors are declared, or a FAT
            sector lies outside the file.
    """
    numbers = _fat_sector_numbers(data, header)
    if header.fat_sector_count == 0 or not numbers:
        raise CorruptCompoundDocumentError("Compound document declares no FAT sectors")

    fat: List[int] = []
    for sector in numbers:
        fat.extend(_read_sector_entries(data, sector, header.sector_size))

    logger.debug(f"Read FAT: {len(numbers)} sectors, {len(fat)} entries")
    return fat


def chain_sectors(
    fat: List[int], start_sector: int, max_sectors: int = 1000
) -> List[int]:
    """
    Follow a sector chain from ``start_sector`` until end-of-chain or free.

    The returned list never holds more than ``max_sectors`` entries.

    Raises:
        SectorChainError: The chain revisits a sector, leaves the FAT,
            contains a reserved marker or is longer than ``max_sectors``.
    """
    sectors: List[int] = []
    visited = set()
    current = start_sector
    while current not in (ENDOFCHAIN, FREESECT):
        if current > MAXREGSECT:
            raise SectorChainError(f"Reserved sector marker {current:#x} inside chain")
        if current >= len(fat):
            raise SectorChainError(
                f"Sector {current} is outside the FAT ({len(fat)} entries)"
            )
        if current in visited:
            raise SectorChainError(f"Sector chain revisits sector {current}")
        if len(sectors) >= max_sectors:
            raise SectorChainError(f"Sector chain exceeds {max_sectors} sectors")
        visited.add(current)
        sectors.append(current)
        current = fat[current]
    return sectors


def read_directory(
    data: bytes,
    header: CFBFHeader,
    fat: List[int],
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> List[DirectoryEntry]:
    """Read all used directory entries in directory order."""
    entries: List[DirectoryEntry] = []
    scanned = 0
    for sector in chain_sectors(
        fat, header.directory_first_sector, limits.max_chain_sectors
    ):
        base = sector_offset(sector, header.sector_size)
        for entry_offset in range(0, header.sector_size, DIRECTORY_ENTRY_SIZE):
            start = base + entry_offset
            if start + DIRECTORY_ENTRY_SIZE > len(data):
                break
            scanned += 1
            if scanned > limits.max_directory_entries:
                raise CorruptCompoundDocumentError(
                    f"Directory holds more than {limits.max_directory_entries} entries"
                )
            entry_type = data[start + 0x42]
            if entry_type == ENTRY_UNUSED:
                continue
            entries.append(
                DirectoryEntry(
                    name=decode_utf16_name(data[start : start + 64]),
                    entry_type=entry_type,
                    first_sector=u32(data, start + 0x74),
                    stream_size=u32(data, start + 0x78),
                )
            )
    return entries


def find_stream(
    data: bytes,
    header: CFBFHeader,
    fat: List[int],
    name: str,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> DirectoryEntry:
    """
    Return the first directory entry whose name contains ``name``.

    The match is case-sensitive.

    Raises:
        StreamNotFoundError: No entry name contains ``name``.
    """
    for entry in read_directory(data, header, fat, limits):
        if name in entry.name:
            logger.debug(
                f"Found stream [{entry.name}]: first sector {entry.first_sector}, "
                f"{entry.stream_size} bytes"
            )
            return entry
    raise StreamNotFoundError(name)


def read_stream(
    data: bytes,
    entry: DirectoryEntry,
    fat: List[int],
    sector_size: int,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> bytes:
    """
    Copy a stream stored in regular sectors into a new buffer.

    Raises:
        CorruptCompoundDocumentError: The declared size cannot be satisfied by
            the chain, or a sector lies outside the file.
    """
    size = entry.stream_size
    if size > len(data):
        raise CorruptCompoundDocumentError(
            f"Stream [{entry.name}] declares {size} bytes in a {len(data)} byte file"
        )

    # a stream may span more sectors than the cap, never more than the file holds
    needed = -(-size // sector_size)
    max_sectors = max(limits.max_chain_sectors, needed)

    buffer = bytearray(size)
    copied = 0
    for sector in chain_sectors(fat, entry.first_sector, max_sectors):
        if copied >= size:
            break
        offset = sector_offset(sector, sector_size)
        count = min(sector_size, size - copied)
        if offset + count > len(data):
            raise CorruptCompoundDocumentError(
                f"Sector {sector} of stream [{entry.name}] lies outside the file"
            )
        buffer[copied : copied + count] = data[offset : offset + count]
        copied += count

    if copied < size:
        raise CorruptCompoundDocumentError(
            f"Stream [{entry.name}] truncated: {copied} of {size} bytes"
        )
    return bytes(buffer)


def read_mini_stream(
    data: bytes,
    header: CFBFHeader,
    fat: List[int],
    root: DirectoryEntry,
    entry: DirectoryEntry,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> bytes:
    """Copy a stream stored in the mini stream (streams below the cutoff size)."""
    container = read_stream(data, root, fat, header.sector_size, limits)

    mini_fat: List[int] = []
    for sector in chain_sectors(
        fat, header.mini_fat_first_sector, limits.max_chain_sectors
    ):
        mini_fat.extend(_read_sector_entries(data, sector, header.sector_size))

    size = entry.stream_size
    chunk = header.mini_sector_size
    buffer = bytearray()
    for mini_sector in chain_sectors(
        mini_fat, entry.first_sector, limits.max_chain_sectors
    ):
        if len(buffer) >= size:
            break
        offset = mini_sector * chunk
        if offset + chunk > len(container):
            raise CorruptCompoundDocumentError(
                f"Mini sector {mini_sector} of stream [{entry.name}] is outside the mini stream"
            )
        buffer.extend(container[offset : offset + chunk])

    if len(buffer) < size:
        raise CorruptCompoundDocumentError(
            f"Stream [{entry.name}] truncated: {len(buffer)} of {size} bytes"
        )
    return bytes(buffer[:size])


def open_stream(
    data: bytes,
    name: str,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
) -> bytes:
    """
    Resolve the stream whose name contains ``name`` to its bytes.

    Raises:
        NotACompoundDocumentError: ``data`` is not a compound document.
        StreamNotFoundError: No such stream.
        CorruptCompoundDocumentError: Container metadata is inconsistent.
    """
    header = parse_header(data)
    fat = read_fat(data, header)
    entries = read_directory(data, header, fat, limits)

    entry = next((e for e in entries if name in e.name), None)
    if entry is None:
        raise StreamNotFoundError(name)

    if entry.entry_type != ENTRY_ROOT and entry.stream_size < header.mini_stream_cutoff:
        root = next((e for e in entries if e.entry_type == ENTRY_ROOT), None)
        if root is None:
            raise CorruptCompoundDocumentError("Compound document has no root entry")
        return read_mini_stream(data, header, fat, root, entry, limits)
    return read_stream(data, entry, fat, header.sector_size, limits)
