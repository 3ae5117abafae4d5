import signal
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from doctext.config.settings import Settings
from doctext.errors.exceptions import (
    ExtractionCancelledError,
    PreparationTimeoutError,
    SandboxCrashError,
)
from doctext.orchestrator.orchestrator import ExtractionOrchestrator, build_orchestrator
from doctext.orchestrator.session import ExtractionOptions, SessionState
from doctext.protocol.messages import ExtractRequest
from doctext.source.document_source import DocumentSource
from doctext.source.models import Document
from doctext.worker.transport import SubprocessTransport

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(sys.platform == "win32", reason="worker stand-ins are POSIX shell scripts"),
]


@pytest.fixture()
def fake_worker(tmp_path: Path) -> Callable[[str], str]:
    """Write an executable shell script used in place of the worker interpreter."""

    def _write(body: str) -> str:
        script = tmp_path / f"worker-{len(list(tmp_path.glob('worker-*')))}.sh"
        script.write_text(f"#!/bin/sh\n{body}\n")
        script.chmod(0o755)
        return str(script)

    return _write


@pytest.fixture()
def pdf_document(write_file) -> Document:  # type: ignore[no-untyped-def]
    return Document.from_path(write_file("report.pdf", b"%PDF-1.4 stand-in"))


class _RecordingFactory:
    def __init__(self, python: str, grace_seconds: float = 5.0) -> None:
        self._python = python
        self._grace_seconds = grace_seconds
        self.transports: list[SubprocessTransport] = []

    def __call__(self) -> SubprocessTransport:
        transport = SubprocessTransport(python=self._python, grace_seconds=self._grace_seconds)
        self.transports.append(transport)
        return transport


def _wait_for_exit(transport: SubprocessTransport, timeout: float = 5.0) -> int | None:
    process = transport._process
    assert process is not None
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        code = process.poll()
        if code is not None:
            return code
        time.sleep(0.02)
    return None


class TestSubprocessTransportTeardown:
    def test_terminate_escalates_to_kill_after_grace(self, fake_worker) -> None:  # type: ignore[no-untyped-def]
        script = fake_worker("trap '' TERM\necho '{\"type\": \"ready\"}'\nexec sleep 30")
        transport = SubprocessTransport(python=script, grace_seconds=0.3)
        first_line = threading.Event()
        exited: list[int] = []
        exit_seen = threading.Event()

        def on_exit(code: int) -> None:
            exited.append(code)
            exit_seen.set()

        transport.start(
            ExtractRequest(document=b"%PDF", mime_type="application/pdf", batch_size=3),
            on_line=lambda line: first_line.set(),
            on_exit=on_exit,
        )
        assert first_line.wait(timeout=5)

        started = time.monotonic()
        transport.terminate()
        elapsed = time.monotonic() - started

        assert exit_seen.wait(timeout=5)
        assert exited == [-signal.SIGKILL]
        assert elapsed >= 0.3

    def test_terminate_stops_cooperative_worker_with_sigterm(self, fake_worker) -> None:  # type: ignore[no-untyped-def]
        script = fake_worker("exec sleep 30")
        transport = SubprocessTransport(python=script, grace_seconds=5.0)
        exited: list[int] = []
        exit_seen = threading.Event()

        def on_exit(code: int) -> None:
            exited.append(code)
            exit_seen.set()

        transport.start(
            ExtractRequest(document=b"%PDF", mime_type="application/pdf", batch_size=3),
            on_line=lambda line: None,
            on_exit=on_exit,
        )
        transport.terminate()
        transport.terminate()

        assert exit_seen.wait(timeout=5)
        assert exited == [-signal.SIGTERM]


class TestOrchestratorWithRealProcesses:
    def test_spawn_failure_is_sandbox_crash(self, tmp_path: Path, pdf_document: Document) -> None:
        orchestrator = build_orchestrator(Settings(worker_python=str(tmp_path / "no-such-python")))

        handle = orchestrator.start(pdf_document, ExtractionOptions(timeout_ms=5000, batch_size=3))

        assert handle.state is SessionState.FAILED
        with pytest.raises(SandboxCrashError, match="Failed to spawn"):
            handle.result(timeout=1)

    def test_worker_exiting_without_result_is_sandbox_crash(
        self, fake_worker, pdf_document: Document  # type: ignore[no-untyped-def]
    ) -> None:
        script = fake_worker("echo '{\"type\": \"pageCount\", \"totalPages\": 2}'\nexit 3")
        orchestrator = build_orchestrator(Settings(worker_python=script))
        try:
            handle = orchestrator.start(pdf_document, ExtractionOptions(timeout_ms=5000, batch_size=3))
            with pytest.raises(SandboxCrashError, match="status 3"):
                handle.result(timeout=10)
        finally:
            orchestrator.shutdown()

        assert handle.progress().total == 2

    def test_preparation_timeout_kills_worker(
        self, fake_worker, pdf_document: Document  # type: ignore[no-untyped-def]
    ) -> None:
        factory = _RecordingFactory(fake_worker("exec sleep 30"))
        orchestrator = ExtractionOrchestrator(DocumentSource(), factory)
        try:
            handle = orchestrator.start(pdf_document, ExtractionOptions(timeout_ms=300, batch_size=3))
            with pytest.raises(PreparationTimeoutError):
                handle.result(timeout=10)
        finally:
            orchestrator.shutdown()

        assert handle.state is SessionState.FAILED
        assert _wait_for_exit(factory.transports[0]) == -signal.SIGTERM

    def test_cancel_kills_worker(
        self, fake_worker, pdf_document: Document  # type: ignore[no-untyped-def]
    ) -> None:
        factory = _RecordingFactory(fake_worker("exec sleep 30"))
        orchestrator = ExtractionOrchestrator(DocumentSource(), factory)
        try:
            handle = orchestrator.start(pdf_document, ExtractionOptions(timeout_ms=30000, batch_size=3))
            handle.cancel()
            with pytest.raises(ExtractionCancelledError):
                handle.result(timeout=1)
        finally:
            orchestrator.shutdown()

        assert handle.state is SessionState.CANCELLED
        assert _wait_for_exit(factory.transports[0]) == -signal.SIGTERM
