import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from doctext.config.settings import Settings
from doctext.errors.exceptions import ProtocolViolationError
from doctext.errors.models import ExtractionError
from doctext.orchestrator.accumulator import ResultAccumulator
from doctext.source.models import Document


class SessionState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    EXTRACTING = "extracting"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED}
)

# Idle -> Completed is the direct-read path for plain-text documents.
_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset(
        {SessionState.PREPARING, SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED}
    ),
    SessionState.PREPARING: frozenset(
        {SessionState.EXTRACTING, SessionState.FAILED, SessionState.CANCELLED}
    ),
    SessionState.EXTRACTING: frozenset(
        {SessionState.EXTRACTING, SessionState.FINALIZING, SessionState.FAILED, SessionState.CANCELLED}
    ),
    SessionState.FINALIZING: frozenset({SessionState.COMPLETED, SessionState.FAILED}),
    SessionState.COMPLETED: frozenset(),
    SessionState.FAILED: frozenset(),
    SessionState.CANCELLED: frozenset(),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExtractionOptions:
    """Per-session tuning. Both required values come from the caller or Settings."""

    timeout_ms: int
    batch_size: int
    page_timeout_ms: int | None = None
    stream_partial: bool = True

    def __post_init__(self) -> None:
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.batch_size <= 0:
            raise ValueError(f"batch_size must be positive, got {self.batch_size}")
        if self.page_timeout_ms is not None and self.page_timeout_ms <= 0:
            raise ValueError(f"page_timeout_ms must be positive, got {self.page_timeout_ms}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExtractionOptions":
        return cls(
            timeout_ms=settings.extraction_timeout_ms,
            batch_size=settings.extraction_batch_size,
            page_timeout_ms=settings.extraction_page_timeout_ms,
            stream_partial=settings.extraction_stream_partial,
        )


@dataclass(frozen=True)
class ProgressSnapshot:
    current: int
    total: int | None

    @property
    def percent(self) -> int:
        if not self.total:
            return 0
        return round(self.current / self.total * 100)


@dataclass
class ExtractionSession:
    """In-memory record of one extraction request.

    Mutated only under ``lock`` by the orchestrator. Callbacks run under
    ``dispatch_lock`` so observers never see them concurrently.
    """

    session_id: str
    document: Document
    options: ExtractionOptions
    state: SessionState = SessionState.IDLE
    current_page: int = 0
    total_pages: int | None = None
    started_at: datetime = field(default_factory=utcnow)
    last_message_at: datetime | None = None
    result: str | None = None
    error: ExtractionError | None = None
    flushed_at_pages: list[int] = field(default_factory=list)
    accumulator: ResultAccumulator = field(default_factory=ResultAccumulator, repr=False)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    dispatch_lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)
    pending_callbacks: list[Callable[[], None]] = field(
        default_factory=list, repr=False, compare=False
    )

    @property
    def accumulated_text(self) -> str:
        return self.accumulator.text

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(
                f"Session {self.session_id}: illegal transition {self.state.value} -> {new_state.value}"
            )
        self.state = new_state

    def set_total_pages(self, total: int) -> None:
        """Set the page count once; a differing value breaks session integrity."""
        if self.total_pages is None:
            self.total_pages = total
        elif total != self.total_pages:
            raise ProtocolViolationError(
                f"Page count changed from {self.total_pages} to {total}",
                page=self.current_page or None,
            )

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(current=self.current_page, total=self.total_pages)
