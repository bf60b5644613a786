import random
import struct
import unittest

import pytest

from cfbf_factory import (
    ENDOFCHAIN,
    FREESECT,
    build_compound_file,
    build_mini_stream_file,
)
from worddoc2text.exceptions import (
    CorruptCompoundDocumentError,
    LegacyDocStructureError,
    NotACompoundDocumentError,
    SectorChainError,
    StreamNotFoundError,
)
from worddoc2text.extractors.ms_legacy.cfbf import (
    DirectoryEntry,
    chain_sectors,
    find_stream,
    open_stream,
    parse_header,
    read_fat,
    read_stream,
    sector_offset,
)

tc = unittest.TestCase()

PAYLOAD = bytes(range(256)) * 20


def _sample_file() -> bytes:
    return build_compound_file([("WordDocument", PAYLOAD), ("1Table", b"table")])


def test_parse_header():
    header = parse_header(_sample_file())

    tc.assertEqual(512, header.sector_size)
    tc.assertEqual(64, header.mini_sector_size)
    tc.assertEqual(1, header.fat_sector_count)
    tc.assertEqual(1, header.directory_first_sector)
    tc.assertEqual(4096, header.mini_stream_cutoff)
    tc.assertEqual(ENDOFCHAIN, header.mini_fat_first_sector)
    tc.assertEqual(0, header.fat_first_sector)


def test_parse_header_rejects_wrong_signature():
    data = bytearray(_sample_file())
    data[0] = 0x50

    with pytest.raises(NotACompoundDocumentError):
        parse_header(bytes(data))

    with pytest.raises(NotACompoundDocumentError):
        parse_header(b"")


def test_parse_header_rejects_truncated_header():
    with pytest.raises(CorruptCompoundDocumentError):
        parse_header(_sample_file()[:300])


def test_parse_header_rejects_bad_sector_shift():
    data = bytearray(_sample_file())
    struct.pack_into("<H", data, 30, 40)

    with pytest.raises(CorruptCompoundDocumentError):
        parse_header(bytes(data))


def test_sector_offset():
    tc.assertEqual(512, sector_offset(0, 512))
    tc.assertEqual(0x1600, sector_offset(10, 512))
    tc.assertEqual(8192, sector_offset(1, 4096))


def test_read_fat():
    data = _sample_file()
    fat = read_fat(data, parse_header(data))

    tc.assertEqual(128, len(fat))
    # FAT sector, directory, then the 10 sectors of WordDocument
    tc.assertEqual(ENDOFCHAIN, fat[1])
    tc.assertListEqual(list(range(3, 12)) + [ENDOFCHAIN], fat[2:12])


def test_read_fat_requires_fat_sectors():
    data = bytearray(_sample_file())
    struct.pack_into("<I", data, 44, 0)

    with pytest.raises(CorruptCompoundDocumentError):
        read_fat(bytes(data), parse_header(bytes(data)))


def test_chain_sectors_follows_chain():
    fat = [1, 2, ENDOFCHAIN, FREESECT]
    tc.assertListEqual([0, 1, 2], chain_sectors(fat, 0))
    tc.assertListEqual([], chain_sectors(fat, ENDOFCHAIN))
    tc.assertListEqual([3], chain_sectors(fat, 3))


def test_chain_sectors_detects_cycle():
    fat = [1, 2, 0]
    with pytest.raises(SectorChainError):
        chain_sectors(fat, 0)


def test_chain_sectors_rejects_sector_outside_fat():
    with pytest.raises(SectorChainError):
        chain_sectors([5], 0)


def test_chain_sectors_rejects_reserved_marker():
    with pytest.raises(SectorChainError):
        chain_sectors([0xFFFFFFFD], 0)


def test_chain_sectors_enforces_cap():
    fat = list(range(1, 1500)) + [ENDOFCHAIN]

    with pytest.raises(SectorChainError):
        chain_sectors(fat, 0)

    tc.assertEqual(1500, len(chain_sectors(fat, 0, max_sectors=2000)))


def test_chain_sectors_is_finite_for_adversarial_fats():
    rng = random.Random(1234)
    markers = [ENDOFCHAIN, FREESECT, 0xFFFFFFFD, 0xFFFFFFFC]
    for _ in range(300):
        size = rng.randint(1, 2000)
        fat = [
            rng.choice(markers) if rng.random() < 0.05 else rng.randrange(size + 5)
            for _ in range(size)
        ]
        try:
            sectors = chain_sectors(fat, rng.randrange(size), max_sectors=1000)
        except SectorChainError:
            continue
        tc.assertLessEqual(len(sectors), 1000)


def test_cyclic_directory_chain_is_reported_as_corruption():
    data = bytearray(_sample_file())
    # FAT entry of the directory sector points back at itself
    struct.pack_into("<I", data, 512 + 4, 1)

    with pytest.raises(SectorChainError) as exc_info:
        open_stream(bytes(data), "WordDocument")
    tc.assertIsInstance(exc_info.value, LegacyDocStructureError)


def test_find_stream():
    data = _sample_file()
    header = parse_header(data)
    fat = read_fat(data, header)

    entry = find_stream(data, header, fat, "WordDocument")
    tc.assertEqual("WordDocument", entry.name)
    tc.assertEqual(2, entry.first_sector)
    tc.assertEqual(len(PAYLOAD), entry.stream_size)

    # substring match, case-sensitive
    tc.assertEqual("1Table", find_stream(data, header, fat, "Table").name)
    with pytest.raises(StreamNotFoundError) as exc_info:
        find_stream(data, header, fat, "worddocument")
    tc.assertEqual("worddocument", exc_info.value.stream_name)


def test_open_stream_returns_stream_bytes():
    stream = open_stream(_sample_file(), "WordDocument")

    tc.assertEqual(PAYLOAD, stream[: len(PAYLOAD)])
    tc.assertEqual(0, len(stream) % 512)


def test_open_stream_missing_stream():
    with pytest.raises(StreamNotFoundError):
        open_stream(_sample_file(), "0Table")


def test_read_stream_rejects_short_chain():
    data = _sample_file()
    header = parse_header(data)
    fat = read_fat(data, header)
    entry = DirectoryEntry(
        name="WordDocument", entry_type=2, first_sector=9, stream_size=2048
    )

    with pytest.raises(CorruptCompoundDocumentError):
        read_stream(data, entry, fat, header.sector_size)


def test_read_stream_rejects_size_beyond_file():
    data = _sample_file()
    header = parse_header(data)
    fat = read_fat(data, header)
    entry = DirectoryEntry(
        name="WordDocument", entry_type=2, first_sector=2, stream_size=len(data) * 2
    )

    with pytest.raises(CorruptCompoundDocumentError):
        read_stream(data, entry, fat, header.sector_size)


def test_open_stream_reads_mini_stream():
    payload = b"small stream content " * 5
    data = build_mini_stream_file("Small", payload)

    tc.assertEqual(payload, open_stream(data, "Small"))


def test_read_stream_follows_chains_longer_than_the_cap():
    sector_count = 1200
    data = bytearray((sector_count + 1) * 512)
    marker = b"last sector"
    last = sector_offset(sector_count - 1, 512)
    data[last : last + len(marker)] = marker
    fat = list(range(1, sector_count)) + [ENDOFCHAIN]
    entry = DirectoryEntry(
        name="WordDocument",
        entry_type=2,
        first_sector=0,
        stream_size=sector_count * 512,
    )

    stream = read_stream(bytes(data), entry, fat, 512)
    tc.assertEqual(sector_count * 512, len(stream))
    tc.assertTrue(stream[-512:].startswith(marker))

    cyclic = fat[:-1] + [0]
    with pytest.raises(SectorChainError):
        read_stream(bytes(data), entry, cyclic, 512)
