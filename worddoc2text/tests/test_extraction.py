import io
import logging
import struct
import unittest

import pytest

from cfbf_factory import (
    build_compound_file,
    build_single_piece_doc,
    build_table_stream_doc,
    build_word_stream,
)
from worddoc2text.exceptions import (
    EncryptedDocumentError,
    ExtractionError,
    NoExtractableTextError,
    NotACompoundDocumentError,
    PieceTableDecodeError,
    StreamNotFoundError,
)
from worddoc2text.extractors.data_types import DocContent, DocMetadata
from worddoc2text.extractors.ms_legacy.candidates import StrategyKind
from worddoc2text.extractors.ms_legacy.doc_extractor import (
    extract_candidates,
    extract_text,
    read_doc,
    try_structural,
)

logger = logging.getLogger(__name__)

tc = unittest.TestCase()


def test_structural_round_trip():
    data = build_single_piece_doc("Hello, world.")

    tc.assertEqual("Hello, world.", extract_text(data))

    outcome = try_structural(data)
    tc.assertIsNone(outcome.error)
    tc.assertEqual(1, len(outcome.candidates))
    tc.assertEqual(StrategyKind.PIECE_TABLE, outcome.candidates[0].source)
    tc.assertIsNotNone(outcome.stream)


def test_structural_candidate_comes_first():
    data = build_single_piece_doc("Hello, world.")
    candidates = extract_candidates(data)

    tc.assertEqual(StrategyKind.PIECE_TABLE, candidates[0].source)
    tc.assertGreater(candidates[0].quality_score, 0)


def test_signature_rejection_falls_back_to_heuristics():
    data = (
        b"\x89\x01\x02\x03\x04\x05\x06\x07"
        + b"\xfe" * 100
        + b"This plain document survived without any container."
        + b"\xfe" * 100
    )

    outcome = try_structural(data)
    tc.assertIsInstance(outcome.error, NotACompoundDocumentError)
    tc.assertIsNone(outcome.stream)

    tc.assertEqual(
        "This plain document survived without any container.", extract_text(data)
    )


def test_all_zero_buffer_raises_no_extractable_text():
    with pytest.raises(NoExtractableTextError) as exc_info:
        extract_text(bytes(10_000))

    tc.assertIsInstance(exc_info.value.__cause__, NotACompoundDocumentError)
    tc.assertIsInstance(exc_info.value, ExtractionError)


def test_missing_word_stream_scans_the_whole_file():
    data = build_compound_file([("SummaryInformation", bytes(4096))])

    outcome = try_structural(data)
    tc.assertIsInstance(outcome.error, StreamNotFoundError)
    tc.assertIsNone(outcome.stream)

    # only the directory entry names are readable
    tc.assertIn("SummaryInformation", extract_text(data))


def test_broken_piece_table_falls_back_to_heuristics():
    stream = bytearray(
        build_word_stream(cps=[0, 5], fcs=[0x1600], fc_min=0, fc_mac=0)
    )
    struct.pack_into("<II", stream, 0x9A, 0, 0)
    text = b"Recovered from the raw stream by scanning."
    stream[0x800 : 0x800 + len(text)] = text
    data = build_compound_file([("WordDocument", bytes(stream))])

    outcome = try_structural(data)
    tc.assertIsInstance(outcome.error, PieceTableDecodeError)
    tc.assertEqual([], outcome.candidates)

    tc.assertIn("Recovered from the raw stream by scanning.", extract_text(data))


def test_corrupt_clx_recovers_text_outside_the_stream():
    body = "Minutes of the annual general meeting."
    data = bytearray(build_single_piece_doc(body))
    # CLX tag of the WordDocument stream, which starts at sector 2
    data[3 * 512 + 0x400] = 0x07

    outcome = try_structural(bytes(data))
    tc.assertIsInstance(outcome.error, PieceTableDecodeError)
    tc.assertIsNotNone(outcome.stream)
    tc.assertNotIn(body.encode("utf-16-le"), outcome.stream)

    candidates = extract_candidates(bytes(data))
    tc.assertFalse(any(c.source.is_structural for c in candidates))
    tc.assertIn(body, extract_text(bytes(data)))


def test_encrypted_document_skips_piece_tables():
    data = bytearray(build_single_piece_doc("Hello, world."))
    # flags of the FIB, WordDocument starts at sector 2
    struct.pack_into("<H", data, 3 * 512 + 0x0A, 0x0100)

    outcome = try_structural(bytes(data))
    tc.assertIsInstance(outcome.error, EncryptedDocumentError)
    tc.assertEqual([], outcome.candidates)

    candidates = extract_candidates(bytes(data))
    tc.assertFalse(any(c.source.is_structural for c in candidates))
    tc.assertIn("Hello, world.", extract_text(bytes(data)))


def test_table_stream_document():
    data = build_table_stream_doc("Grotius fled to France.\rHe wrote a book.")

    outcome = try_structural(data)
    tc.assertListEqual(
        [StrategyKind.TABLE_STREAM_PIECE_TABLE],
        [c.source for c in outcome.candidates],
    )
    tc.assertEqual("Grotius fled to France.\nHe wrote a book.", extract_text(data))


def test_cancellation_keeps_structural_result():
    data = build_single_piece_doc("Hello, world.")

    tc.assertEqual("Hello, world.", extract_text(data, should_cancel=lambda: True))


def test_read_doc():
    data = io.BytesIO(build_single_piece_doc("Hello, world."))
    data.seek(5)

    doc: DocContent = next(read_doc(data, path="letters/hello.doc"))

    tc.assertEqual("Hello, world.", doc.main_text)
    tc.assertEqual("piece_table", doc.extraction_method)
    tc.assertIsInstance(doc.metadata, DocMetadata)
    tc.assertEqual("hello.doc", doc.metadata.filename)
    tc.assertEqual(".doc", doc.metadata.file_extension)
    tc.assertEqual("Hello, world.", doc.get_full_text())
    tc.assertListEqual(["Hello, world."], list(doc.iterator()))
    tc.assertIs(doc.metadata, doc.get_metadata())


def test_read_doc_without_text_raises():
    with pytest.raises(NoExtractableTextError):
        next(read_doc(io.BytesIO(bytes(10_000))))


def test_read_doc_wraps_unexpected_errors():
    class BrokenFile(io.BytesIO):
        def read(self, *args):
            raise OSError("disk gone")

    with pytest.raises(ExtractionError) as exc_info:
        next(read_doc(BrokenFile(b"")))
    tc.assertIsInstance(exc_info.value.__cause__, OSError)
