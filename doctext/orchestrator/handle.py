from concurrent.futures import Future
from typing import TYPE_CHECKING

from doctext.errors.exceptions import ExtractionFailure
from doctext.orchestrator.session import ExtractionSession, ProgressSnapshot, SessionState

if TYPE_CHECKING:
    from doctext.orchestrator.orchestrator import ExtractionOrchestrator


class SessionHandle:
    """Caller-side view of one session, returned immediately by ``start()``.

    Holds the session itself, so it keeps working after the orchestrator
    has dropped the session from its archive.
    """

    def __init__(self, session: ExtractionSession, orchestrator: "ExtractionOrchestrator") -> None:
        self._session = session
        self._orchestrator = orchestrator
        self._future: Future[str] = Future()

    @property
    def session_id(self) -> str:
        return self._session.session_id

    @property
    def state(self) -> SessionState:
        return self._session.state

    def progress(self) -> ProgressSnapshot:
        return self._session.snapshot()

    def cancel(self) -> None:
        self._orchestrator._cancel(self._session)

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: float | None = None) -> str:
        """Block until the session is terminal and return the extracted text.

        Raises:
            ExtractionFailure: the classified failure for Failed/Cancelled sessions.
            TimeoutError: if ``timeout`` elapses first.
        """
        return self._future.result(timeout=timeout)

    def _resolve(self, text: str) -> None:
        self._future.set_result(text)

    def _reject(self, failure: ExtractionFailure) -> None:
        self._future.set_exception(failure)
