class ExtractionError(Exception):
    """Base class for all errors raised by worddoc2text."""

    def __init__(self, message: str = None, *, cause: Exception = None):
        if message is None:
            message = "Extraction failed"
        super().__init__(message)
        # Use exception chaining if cause is provided
        self.__cause__ = cause
        self.cause = cause


class ExtractionFileFormatNotSupportedError(ExtractionError):
    """Raised when the file format for extraction is not supported."""

    def __init__(self, file_path: str, message: str = None, *, cause: Exception = None):
        self.file_path = file_path
        if message is None:
            message = f"Extraction file format not supported: {file_path}"
        super().__init__(message, cause=cause)


class LegacyDocStructureError(ExtractionError):
    """
    A structural stage (container, FIB, piece table) could not be parsed.

    These errors are expected for many real-world files and are recovered
    inside the extraction cascade; they only reach the caller as the cause
    of a NoExtractableTextError.
    """


class NotACompoundDocumentError(LegacyDocStructureError):
    """The buffer does not start with the OLE compound file signature."""


class StreamNotFoundError(LegacyDocStructureError):
    """The compound file has no stream with the requested name."""

    def __init__(self, stream_name: str, message: str = None, *, cause: Exception = None):
        self.stream_name = stream_name
        if message is None:
            message = f"Stream not found in compound document: {stream_name}"
        super().__init__(message, cause=cause)


class CorruptCompoundDocumentError(LegacyDocStructureError):
    """Container metadata points outside the file or is otherwise inconsistent."""


class SectorChainError(CorruptCompoundDocumentError):
    """A FAT sector chain is cyclic, too long or references an invalid sector."""


class TruncatedStructureError(CorruptCompoundDocumentError):
    """A fixed-layout field extends past the end of its buffer."""


class PieceTableDecodeError(LegacyDocStructureError):
    """The CLX / piece table could not be located or yielded no text."""


class EncryptedDocumentError(LegacyDocStructureError):
    """The FIB marks the document as encrypted or password-protected."""


class NoExtractableTextError(ExtractionError):
    """Neither structural decoding nor any heuristic produced usable text."""
