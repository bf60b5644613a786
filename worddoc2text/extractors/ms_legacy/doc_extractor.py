"""
DOC Document Extractor
======================

Extracts plain text and metadata from legacy Microsoft Word .doc files
(Word 97-2003 binary format, stored in an OLE2 / CFBF container).

Extraction Cascade
------------------
Real-world .doc files are often damaged, truncated or written by tools that
only approximate the format, so no single parser is trusted:

    1. Structural path: compound file -> WordDocument stream -> FIB ->
       piece table. Both the inline CLX and the table stream CLX are tried,
       each contributing its own candidate.
    2. Heuristics: always run afterwards over the WordDocument stream when
       it could be resolved. The whole file is scanned as well whenever the
       structural path produced no candidate.
    3. Selection: candidates are de-duplicated, scored and the best one
       wins. Structural candidates win ties.

Structural failures (bad signature, missing stream, corrupt chains, broken
piece tables) never escape the cascade. They are recorded and become the
cause of ``NoExtractableTextError`` when no candidate survives.

Dependencies
------------
olefile: https://github.com/decalage2/olefile
    pip install olefile

    Used only for the SummaryInformation metadata (title, author, dates,
    counts). Text extraction reads the container itself so that files
    olefile rejects can still be recovered.

Known Limitations
-----------------
- Encrypted documents are not decrypted; heuristics may still find text
- Formatting, tables, images and headers/footers are not reconstructed
- Heuristic output can contain fragments of style or font names
"""

import datetime
import io
import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Callable, Generator, List, Optional, Tuple

import olefile

from worddoc2text.exceptions import (
    CorruptCompoundDocumentError,
    EncryptedDocumentError,
    ExtractionError,
    LegacyDocStructureError,
    NoExtractableTextError,
)
from worddoc2text.extractors.data_types import DocContent, DocMetadata
from worddoc2text.extractors.ms_legacy.candidates import (
    ExtractionCandidate,
    StrategyKind,
    deduplicate,
    select_best,
)
from worddoc2text.extractors.ms_legacy.cfbf import open_stream
from worddoc2text.extractors.ms_legacy.fib import Fib, parse_fib
from worddoc2text.extractors.ms_legacy.heuristics import run_heuristics
from worddoc2text.extractors.ms_legacy.piece_table import (
    decode_piece_table,
    decode_table_stream_piece_table,
)
from worddoc2text.extractors.ms_legacy.text_quality import normalize_newlines
from worddoc2text.extractors.util.scan_limits import (
    DEFAULT_EXTRACTION_LIMITS,
    ExtractionLimits,
)

logger = logging.getLogger(__name__)

WORD_DOCUMENT_STREAM = "WordDocument"


@dataclass
class StructuralOutcome:
    """
    Result of the structural path.

    ``stream`` is the WordDocument stream when the container could be read,
    ``error`` the first structural failure when no structural candidate was
    produced.
    """

    candidates: List[ExtractionCandidate] = field(default_factory=list)
    stream: Optional[bytes] = None
    error: Optional[LegacyDocStructureError] = None


def _run_stage(
    description: str, stage: Callable[[], Any]
) -> Tuple[Any, Optional[LegacyDocStructureError]]:
    """Run one structural stage, turning its failure into a returned error."""
    try:
        return stage(), None
    except LegacyDocStructureError as exc:
        logger.debug(f"{description} failed: {exc}")
        return None, exc
    except (struct.error, IndexError) as exc:
        logger.warning("Unexpected decode error in %s: %s", description, exc)
        return None, CorruptCompoundDocumentError(
            f"{description} failed on malformed data", cause=exc
        )


def _read_word_stream(data: bytes, limits: ExtractionLimits) -> Tuple[bytes, Fib]:
    stream = open_stream(data, WORD_DOCUMENT_STREAM, limits)
    return stream, parse_fib(stream)


def try_structural(
    data: bytes, limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS
) -> StructuralOutcome:
    """
    Decode the document text from its piece tables.

    Never raises for malformed input; failures are reported in the outcome.
    """
    resolved, error = _run_stage(
        "Reading the WordDocument stream", lambda: _read_word_stream(data, limits)
    )
    if resolved is None:
        return StructuralOutcome(error=error)

    stream, fib = resolved
    if fib.is_encrypted:
        logger.debug("FIB marks the document as encrypted, skipping piece tables")
        return StructuralOutcome(
            stream=stream,
            error=EncryptedDocumentError("DOC is encrypted or password-protected"),
        )

    candidates: List[ExtractionCandidate] = []
    errors: List[LegacyDocStructureError] = []

    text, error = _run_stage(
        "Inline piece table", lambda: decode_piece_table(stream, data, fib, limits)
    )
    if text:
        candidates.append(ExtractionCandidate.scored(text, StrategyKind.PIECE_TABLE))
    elif error is not None:
        errors.append(error)

    if fib.is_word_document and fib.table_lcb_clx:
        text, error = _run_stage(
            f"{fib.table_stream_name} piece table",
            lambda: decode_table_stream_piece_table(
                stream, open_stream(data, fib.table_stream_name, limits), fib, limits
            ),
        )
        if text:
            candidates.append(
                ExtractionCandidate.scored(text, StrategyKind.TABLE_STREAM_PIECE_TABLE)
            )
        elif error is not None:
            errors.append(error)

    return StructuralOutcome(
        candidates=candidates,
        stream=stream,
        error=errors[0] if errors and not candidates else None,
    )


def _collect(
    data: bytes,
    limits: ExtractionLimits,
    should_cancel: Optional[Callable[[], bool]],
) -> Tuple[List[ExtractionCandidate], StructuralOutcome]:
    data = bytes(data)
    outcome = try_structural(data, limits)
    target = outcome.stream if outcome.stream is not None else data
    candidates = outcome.candidates + run_heuristics(target, limits, should_cancel)
    if outcome.stream is not None and not outcome.candidates:
        # piece offsets point into the whole file, not just the stream
        logger.debug("No structural text, scanning the whole file")
        candidates += run_heuristics(data, limits, should_cancel)
    return deduplicate(candidates), outcome


def extract_candidates(
    data: bytes,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> List[ExtractionCandidate]:
    """All de-duplicated candidates, structural ones first, with their scores."""
    candidates, _ = _collect(data, limits, should_cancel)
    return candidates


def _best_candidate(
    data: bytes,
    limits: ExtractionLimits,
    should_cancel: Optional[Callable[[], bool]],
) -> ExtractionCandidate:
    candidates, outcome = _collect(data, limits, should_cancel)
    try:
        return select_best(candidates, limits.min_candidate_length)
    except NoExtractableTextError:
        raise NoExtractableTextError(
            "No extractable text found in document", cause=outcome.error
        )


def extract_text(
    data: bytes,
    limits: ExtractionLimits = DEFAULT_EXTRACTION_LIMITS,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> str:
    """
    Extract the readable text of a .doc file.

    Args:
        data: Complete raw content of the file.
        limits: Caps and thresholds for every scan.
        should_cancel: Polled before each heuristic strategy.

    Returns:
        Newline-normalized text of the best candidate.

    Raises:
        NoExtractableTextError: No candidate is usable. Its ``cause`` is the
            structural failure, e.g. NotACompoundDocumentError or
            StreamNotFoundError, when there was one.
    """
    best = _best_candidate(data, limits, should_cancel)
    return normalize_newlines(best.text)


def read_doc(
    file_like: io.BytesIO, path: str | None = None
) -> Generator[DocContent, Any, None]:
    """
    Extract all relevant content from a legacy Word .doc file.

    This function uses a generator pattern for API consistency with the
    rest of the library, even though a DOC file holds exactly one document.

    Args:
        file_like: BytesIO object containing the complete DOC file data.
            The stream position is reset to the beginning before reading.
        path: Optional filesystem path to the source file. If provided,
            populates file metadata (filename, extension, folder) in the
            returned DocContent.metadata.

    Yields:
        DocContent: main text, the strategy that produced it and metadata
            with title, author, dates and counts.

    Raises:
        NoExtractableTextError: No readable text was found.
        ExtractionError: Any other failure while reading the input.

    Example:
        >>> import io
        >>> with open("report.doc", "rb") as f:
        ...     data = io.BytesIO(f.read())
        ...     for doc in read_doc(data, path="report.doc"):
        ...         print(doc.extraction_method)
        ...         print(doc.main_text)
    """
    try:
        file_like.seek(0)
        data = file_like.read()

        best = _best_candidate(data, DEFAULT_EXTRACTION_LIMITS, None)

        document = DocContent(
            main_text=normalize_newlines(best.text),
            extraction_method=best.source.value,
            metadata=_read_metadata(data),
        )
        document.metadata.populate_from_path(path)

        logger.info(
            "Extracted DOC: %d characters, %d words via %s",
            len(document.main_text),
            len(document.main_text.split()),
            document.extraction_method,
        )
        yield document
    except ExtractionError:
        raise
    except Exception as exc:
        raise ExtractionError("Failed to extract DOC file", cause=exc) from exc


def _decode_if_bytes(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value or ""


def _isoformat(value: Any) -> str:
    return value.isoformat() if isinstance(value, datetime.datetime) else ""


def _read_metadata(data: bytes) -> DocMetadata:
    """
    Read document properties from the SummaryInformation stream with olefile.

    Returns an empty DocMetadata when the container cannot be opened by
    olefile or carries no properties; failures are logged at debug level.
    """
    if not olefile.isOleFile(io.BytesIO(data)):
        return DocMetadata()
    try:
        with olefile.OleFileIO(io.BytesIO(data)) as ole:
            m = ole.get_metadata()
        return DocMetadata(
            title=_decode_if_bytes(m.title),
            author=_decode_if_bytes(m.author),
            subject=_decode_if_bytes(m.subject),
            keywords=_decode_if_bytes(m.keywords),
            last_saved_by=_decode_if_bytes(m.last_saved_by),
            create_time=_isoformat(m.create_time),
            last_saved_time=_isoformat(m.last_saved_time),
            num_pages=m.num_pages or 0,
            num_words=m.num_words or 0,
            num_chars=m.num_chars or 0,
        )
    except Exception as e:
        logger.debug(f"Metadata extraction failed: [{e}]")
        return DocMetadata()
