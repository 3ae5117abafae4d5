from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    """Closed taxonomy of extraction failures surfaced to callers."""

    UNSUPPORTED_FORMAT = "UnsupportedFormat"
    READ_FAILURE = "ReadFailure"
    SANDBOX_CRASH = "SandboxCrash"
    PROTOCOL_VIOLATION = "ProtocolViolation"
    PAGE_EXTRACTION_FAILURE = "PageExtractionFailure"
    PREPARATION_TIMEOUT = "PreparationTimeout"
    CANCELLED = "Cancelled"
    PREMATURE_FINALIZE = "PrematureFinalize"
    ALREADY_IN_PROGRESS = "AlreadyInProgress"


@dataclass(frozen=True)
class ExtractionError:
    """User-visible failure: kind, human message and optional page index."""

    kind: ErrorKind
    message: str
    page: int | None = None

    def __str__(self) -> str:
        if self.page is None:
            return f"{self.kind.value}: {self.message}"
        return f"{self.kind.value} (page {self.page}): {self.message}"
