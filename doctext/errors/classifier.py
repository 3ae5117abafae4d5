"""Maps raw failures from every layer into the closed ErrorKind taxonomy."""

from doctext.errors.exceptions import ExtractionFailure
from doctext.errors.models import ErrorKind, ExtractionError
from doctext.logging.logger import Log
from doctext.protocol.exceptions import ProtocolError
from doctext.worker.exceptions import TransportError, WorkerReportedError


class ErrorClassifier:
    """Total classification: every input maps to exactly one ErrorKind."""

    def classify(
        self,
        raw: BaseException,
        *,
        page: int | None = None,
        preparing: bool = False,
    ) -> ExtractionError:
        """Classify a raw failure.

        Args:
            raw: The exception raised or synthesized for the failure.
            page: Page the session was extracting, if any pages were reached.
            preparing: True while no page count has been accepted yet.
        """
        message = str(raw) or type(raw).__name__
        if isinstance(raw, ExtractionFailure):
            return ExtractionError(
                kind=raw.kind,
                message=raw.message,
                page=raw.page if raw.page is not None else page,
            )
        if isinstance(raw, ProtocolError):
            return ExtractionError(ErrorKind.PROTOCOL_VIOLATION, message, page)
        if isinstance(raw, WorkerReportedError):
            if preparing:
                return ExtractionError(ErrorKind.READ_FAILURE, message)
            return ExtractionError(ErrorKind.PAGE_EXTRACTION_FAILURE, message, page)
        if isinstance(raw, TransportError):
            return ExtractionError(ErrorKind.SANDBOX_CRASH, message, page)
        if isinstance(raw, (OSError, UnicodeDecodeError)):
            return ExtractionError(ErrorKind.READ_FAILURE, message, page)
        Log.warning(f"Unmapped failure {type(raw).__name__} classified as sandbox crash")
        return ExtractionError(ErrorKind.SANDBOX_CRASH, message, page)
