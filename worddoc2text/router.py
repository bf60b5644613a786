import io
import logging
import mimetypes
import os
from typing import Any, Callable, Generator

from worddoc2text.exceptions import ExtractionFileFormatNotSupportedError
from worddoc2text.extractors.data_types import ExtractionInterface

logger = logging.getLogger(__name__)

mime_type_mapping = {
    "application/msword": "doc",
}

# legacy Word templates share the binary format
extension_mapping = {
    ".doc": "doc",
    ".dot": "doc",
}


def _get_extractor(
    file_type: str,
) -> Callable[[io.BytesIO, str | None], Generator[ExtractionInterface, Any, None]]:
    """Return the extractor function for a file type (lazy import)."""
    if file_type == "doc":
        from worddoc2text.extractors.ms_legacy.doc_extractor import read_doc

        return read_doc
    raise ExtractionFileFormatNotSupportedError(
        file_type, f"No extractor for file type: {file_type}"
    )


def _detect_file_type(path: str) -> str | None:
    path = path.lower()
    mime_type, _ = mimetypes.guess_type(path)
    if mime_type in mime_type_mapping:
        file_type = mime_type_mapping[mime_type]
        logger.debug(
            f"Detected file type: {file_type} (MIME: {mime_type}) for file: {path}"
        )
        return file_type

    _, extension = os.path.splitext(path)
    if extension in extension_mapping:
        logger.debug(f"Detected file type from extension {extension} for file: {path}")
        return extension_mapping[extension]

    logger.debug(f"File [{path}] with mime type [{mime_type}] is not supported")
    return None


def is_supported_file(path: str) -> bool:
    """Checks if the path is a supported file"""
    return _detect_file_type(str(path)) is not None


def get_extractor(
    path: str,
) -> Callable[[io.BytesIO, str | None], Generator[ExtractionInterface, Any, None]]:
    """Analyses the path of a file and returns a suited extractor.
       The file MUST not exist (yet). The path or filename alone suffices to return an
       extractor.

    :returns a function of an extractor. All extractors take a file-like object as parameter
    :raises ExtractionFileFormatNotSupportedError: File is not covered by any extractor
    """
    file_type = _detect_file_type(str(path))
    if file_type is None:
        raise ExtractionFileFormatNotSupportedError(str(path))
    return _get_extractor(file_type)
