import io
import json
from collections.abc import Callable
from pathlib import Path

import pytest
from reportlab.lib.pagesizes import letter
from reportlab.pdfgen import canvas

from doctext.protocol.messages import ExtractRequest
from doctext.worker.transport import ExitHandler, LineHandler, WorkerTransport


def _build_pdf(pages: list[str]) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=letter)
    for text in pages:
        if text:
            c.drawString(72, 720, text)
        c.showPage()
    c.save()
    return buf.getvalue()


@pytest.fixture()
def sample_pdf_bytes() -> bytes:
    """Generate a minimal single-page PDF with known text content."""
    return _build_pdf(["Hello PDF World"])


@pytest.fixture()
def multi_page_pdf_bytes() -> bytes:
    """Generate a two-page PDF with known text on each page."""
    return _build_pdf(["Page one content", "Page two content"])


@pytest.fixture()
def ten_page_pdf_bytes() -> bytes:
    """Generate a ten-page PDF; page N reads 'Page N content'."""
    return _build_pdf([f"Page {n} content" for n in range(1, 11)])


@pytest.fixture()
def empty_pdf_bytes() -> bytes:
    """Generate a valid PDF with no text content (blank page)."""
    return _build_pdf([""])


class FakeTransport(WorkerTransport):
    """In-process transport; tests push worker lines synchronously."""

    def __init__(self) -> None:
        self.request: ExtractRequest | None = None
        self._on_line: LineHandler | None = None
        self._on_exit: ExitHandler | None = None
        self.terminated = False

    def start(self, request: ExtractRequest, on_line: LineHandler, on_exit: ExitHandler) -> None:
        self.request = request
        self._on_line = on_line
        self._on_exit = on_exit

    def emit(self, payload: dict[str, object] | str) -> None:
        assert self._on_line is not None
        self._on_line(payload if isinstance(payload, str) else json.dumps(payload))

    def exit(self, returncode: int) -> None:
        assert self._on_exit is not None
        self._on_exit(returncode)

    def terminate(self) -> None:
        self.terminated = True


class FakeTransportFactory:
    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


class ManualTimer:
    def __init__(self, interval: float, function: Callable[[], None]) -> None:
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled:
            self.function()


class ManualTimerFactory:
    """Timer factory whose timers only fire when a test says so."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_all(self) -> None:
        for timer in self.pending:
            timer.fire()


@pytest.fixture()
def transports() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture()
def timers() -> ManualTimerFactory:
    return ManualTimerFactory()


@pytest.fixture()
def write_file(tmp_path: Path) -> Callable[[str, bytes], Path]:
    def _write(name: str, content: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(content)
        return path

    return _write
