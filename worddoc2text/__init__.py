"""
worddoc2text: Text recovery for legacy Microsoft Word .doc files.

A Python library for extracting plain text from Word 97-2003 binary
documents. Text is decoded from the document's piece table when the file is
intact and recovered by byte-pattern heuristics when it is not; the most
readable candidate is returned.
"""

import io
from pathlib import Path
from typing import Any, Generator

from worddoc2text.exceptions import (
    ExtractionError,
    ExtractionFileFormatNotSupportedError,
    LegacyDocStructureError,
    NoExtractableTextError,
)
from worddoc2text.extractors.data_types import (
    DocContent,
    DocMetadata,
    ExtractionInterface,
)
from worddoc2text.extractors.ms_legacy.doc_extractor import (
    extract_candidates,
    extract_text,
)
from worddoc2text.extractors.util.scan_limits import (
    DEFAULT_EXTRACTION_LIMITS,
    ExtractionLimits,
)
from worddoc2text.router import get_extractor, is_supported_file

__version__ = "0.1.0"


def read_doc(
    file_like: io.BytesIO, path: str | None = None
) -> Generator[DocContent, Any, None]:
    """Extract content from a DOC file."""
    from worddoc2text.extractors.ms_legacy.doc_extractor import read_doc as _read_doc

    return _read_doc(file_like, path)


def read_file(
    path: str | Path,
) -> Generator[ExtractionInterface, Any, None]:
    """
    Read and extract content from a file.

    Detects the file type from the path and uses the matching extractor.

    Args:
        path: Path to the file to read (.doc or .dot).

    Yields:
        DocContent with the extracted text and metadata.

    Raises:
        ExtractionFileFormatNotSupportedError: If the file type is not supported.
        FileNotFoundError: If the file does not exist.
        NoExtractableTextError: If no readable text was found.

    Example:
        >>> import worddoc2text
        >>> for result in worddoc2text.read_file("report.doc"):
        ...     print(result.get_full_text())
    """
    path = Path(path)
    extractor = get_extractor(str(path))
    with open(path, "rb") as f:
        yield from extractor(io.BytesIO(f.read()), str(path))


__all__ = [
    # Version
    "__version__",
    # Main functions
    "extract_text",
    "extract_candidates",
    "read_file",
    "read_doc",
    "is_supported_file",
    "get_extractor",
    # Configuration
    "ExtractionLimits",
    "DEFAULT_EXTRACTION_LIMITS",
    # Results
    "DocContent",
    "DocMetadata",
    # Errors
    "ExtractionError",
    "ExtractionFileFormatNotSupportedError",
    "LegacyDocStructureError",
    "NoExtractableTextError",
]
