import pytest

from doctext.errors.exceptions import ProtocolViolationError
from doctext.orchestrator.session import (
    ExtractionOptions,
    ExtractionSession,
    ProgressSnapshot,
    SessionState,
)
from doctext.source.models import Document


def _make_session() -> ExtractionSession:
    return ExtractionSession(
        session_id="s1",
        document=Document(uri="/tmp/a.pdf", mime_type="application/pdf", size_bytes=10, name="a.pdf"),
        options=ExtractionOptions(timeout_ms=1000, batch_size=2),
    )


class TestTransitions:
    def test_happy_path(self) -> None:
        session = _make_session()
        for state in (
            SessionState.PREPARING,
            SessionState.EXTRACTING,
            SessionState.EXTRACTING,
            SessionState.FINALIZING,
            SessionState.COMPLETED,
        ):
            session.transition(state)
        assert session.is_terminal

    def test_idle_can_complete_directly(self) -> None:
        session = _make_session()
        session.transition(SessionState.COMPLETED)
        assert session.state is SessionState.COMPLETED

    @pytest.mark.parametrize(
        "path",
        [
            [SessionState.EXTRACTING],
            [SessionState.PREPARING, SessionState.COMPLETED],
            [SessionState.PREPARING, SessionState.FAILED, SessionState.CANCELLED],
            [SessionState.CANCELLED, SessionState.PREPARING],
        ],
    )
    def test_illegal_transitions_raise(self, path: list[SessionState]) -> None:
        session = _make_session()
        with pytest.raises(ValueError, match="illegal transition"):
            for state in path:
                session.transition(state)


class TestTotalPages:
    def test_set_once(self) -> None:
        session = _make_session()
        session.set_total_pages(4)
        session.set_total_pages(4)
        assert session.total_pages == 4

    def test_changed_total_is_violation(self) -> None:
        session = _make_session()
        session.set_total_pages(4)
        session.current_page = 2
        with pytest.raises(ProtocolViolationError) as exc_info:
            session.set_total_pages(5)
        assert exc_info.value.page == 2
        assert session.total_pages == 4


class TestProgressSnapshot:
    def test_percent_unknown_total(self) -> None:
        assert ProgressSnapshot(current=0, total=None).percent == 0

    def test_percent(self) -> None:
        assert ProgressSnapshot(current=1, total=3).percent == 33
        assert ProgressSnapshot(current=3, total=3).percent == 100

    def test_session_snapshot(self) -> None:
        session = _make_session()
        session.set_total_pages(8)
        session.current_page = 2
        assert session.snapshot() == ProgressSnapshot(current=2, total=8)
