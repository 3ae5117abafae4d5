from typing import ClassVar

from doctext.errors.models import ErrorKind, ExtractionError


class ExtractionFailure(Exception):
    """Base exception for all classified extraction failures."""

    kind: ClassVar[ErrorKind] = ErrorKind.SANDBOX_CRASH

    def __init__(self, message: str, page: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.page = page

    def to_error(self) -> ExtractionError:
        return ExtractionError(kind=self.kind, message=self.message, page=self.page)

    @classmethod
    def from_error(cls, error: ExtractionError) -> "ExtractionFailure":
        """Rebuild the matching exception subclass for a classified error."""
        exc_cls = _BY_KIND.get(error.kind, SandboxCrashError)
        return exc_cls(error.message, page=error.page)


class UnsupportedFormatError(ExtractionFailure):
    """Raised when a document's mime type has no handling strategy."""

    kind = ErrorKind.UNSUPPORTED_FORMAT


class ReadFailureError(ExtractionFailure):
    """Raised when document bytes cannot be read or opened."""

    kind = ErrorKind.READ_FAILURE


class SandboxCrashError(ExtractionFailure):
    """Raised when the rendering worker dies or fails in an unclassified way."""

    kind = ErrorKind.SANDBOX_CRASH


class ProtocolViolationError(ExtractionFailure):
    """Raised when the message stream breaks session integrity."""

    kind = ErrorKind.PROTOCOL_VIOLATION


class PageExtractionError(ExtractionFailure):
    """Raised when the worker fails on a specific page."""

    kind = ErrorKind.PAGE_EXTRACTION_FAILURE


class PreparationTimeoutError(ExtractionFailure):
    """Raised when no page count arrives before the preparation deadline."""

    kind = ErrorKind.PREPARATION_TIMEOUT


class ExtractionCancelledError(ExtractionFailure):
    """Raised when a session was cancelled by its caller."""

    kind = ErrorKind.CANCELLED


class PrematureFinalizeError(ExtractionFailure):
    """Raised when a result is finalized before the final chunk arrived."""

    kind = ErrorKind.PREMATURE_FINALIZE


class AlreadyInProgressError(ExtractionFailure):
    """Raised when a document already has an active session."""

    kind = ErrorKind.ALREADY_IN_PROGRESS


_BY_KIND: dict[ErrorKind, type[ExtractionFailure]] = {
    exc_cls.kind: exc_cls
    for exc_cls in (
        UnsupportedFormatError,
        ReadFailureError,
        SandboxCrashError,
        ProtocolViolationError,
        PageExtractionError,
        PreparationTimeoutError,
        ExtractionCancelledError,
        PrematureFinalizeError,
        AlreadyInProgressError,
    )
}
