import threading
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from functools import partial

from doctext.config.settings import Settings
from doctext.errors.classifier import ErrorClassifier
from doctext.errors.exceptions import (
    AlreadyInProgressError,
    ExtractionCancelledError,
    ExtractionFailure,
    PageExtractionError,
    PreparationTimeoutError,
    ProtocolViolationError,
    ReadFailureError,
    UnsupportedFormatError,
)
from doctext.errors.models import ErrorKind, ExtractionError
from doctext.logging.logger import Log
from doctext.orchestrator.handle import SessionHandle
from doctext.orchestrator.session import (
    ExtractionOptions,
    ExtractionSession,
    ProgressSnapshot,
    SessionState,
    utcnow,
)
from doctext.orchestrator.timeout_guard import TimeoutGuard, TimerFactory, daemon_timer
from doctext.protocol.codec import decode
from doctext.protocol.exceptions import ProtocolError
from doctext.protocol.messages import (
    ErrorReport,
    ExtractRequest,
    FullText,
    PageCount,
    PartialText,
    Progress,
    ProtocolMessage,
    Ready,
    TextMessage,
)
from doctext.source.document_source import DocumentSource, HandlingStrategy
from doctext.source.models import Document
from doctext.worker.exceptions import TransportError, WorkerReportedError
from doctext.worker.transport import SubprocessTransport, WorkerTransport

ProgressCallback = Callable[[int, int], None]
CompleteCallback = Callable[[str], None]
ErrorCallback = Callable[[ExtractionError], None]
TransportFactory = Callable[[], WorkerTransport]


@dataclass
class ExtractionListener:
    """Callbacks a caller can attach when starting a session."""

    on_progress: list[ProgressCallback] = field(default_factory=list)
    on_complete: list[CompleteCallback] = field(default_factory=list)
    on_error: list[ErrorCallback] = field(default_factory=list)


class ExtractionOrchestrator:
    """Drives extraction sessions: classify, spawn worker, apply messages, finish.

    State machine:
    Idle -> Preparing -> Extracting -> Finalizing -> Completed | Failed | Cancelled.

    Messages for one session arrive from a single transport thread and are
    applied one at a time under the session lock. Timeouts and cancellation
    take the same lock, so every terminal transition happens exactly once.
    Callbacks run after the lock is released. Terminal sessions leave the
    active registries and are kept in a bounded archive for late lookups.
    """

    def __init__(
        self,
        source: DocumentSource,
        transport_factory: TransportFactory,
        *,
        engine: str = "pdfplumber",
        classifier: ErrorClassifier | None = None,
        timer_factory: TimerFactory = daemon_timer,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
        archive_size: int = 32,
    ) -> None:
        self._source = source
        self._transport_factory = transport_factory
        self._engine = engine
        self._classifier = classifier or ErrorClassifier()
        self._id_factory = id_factory
        self._preparation_guard = TimeoutGuard(self._on_preparation_timeout, timer_factory)
        self._stall_guard = TimeoutGuard(self._on_page_stall, timer_factory)

        self._registry_lock = threading.Lock()
        self._sessions: dict[str, ExtractionSession] = {}
        self._active_by_key: dict[str, str] = {}
        self._handles: dict[str, SessionHandle] = {}
        self._listeners: dict[str, ExtractionListener] = {}
        self._transports: dict[str, WorkerTransport] = {}
        # terminal sessions, oldest first; bounded by archive_size
        self._archive: OrderedDict[str, ExtractionSession] = OrderedDict()
        self._archive_size = archive_size

    # Public API

    def start(
        self,
        document: Document,
        options: ExtractionOptions,
        listener: ExtractionListener | None = None,
    ) -> SessionHandle:
        """Start extracting ``document`` and return immediately.

        Plain-text documents are read synchronously and the returned handle
        is already completed.

        Raises:
            UnsupportedFormatError: if the mime type has no handling strategy.
            AlreadyInProgressError: if the document has an active session.
        """
        strategy = self._source.classify(document)
        if strategy is HandlingStrategy.UNSUPPORTED:
            raise UnsupportedFormatError(
                f"Unsupported document type '{document.mime_type}' for {document.name}"
            )

        with self._registry_lock:
            active_id = self._active_by_key.get(document.key)
            if active_id is not None:
                raise AlreadyInProgressError(
                    f"Document {document.name} is already being extracted by session {active_id}"
                )
            session = ExtractionSession(
                session_id=self._id_factory(), document=document, options=options
            )
            handle = SessionHandle(session, self)
            self._sessions[session.session_id] = session
            self._handles[session.session_id] = handle
            self._listeners[session.session_id] = listener or ExtractionListener()
            self._active_by_key[document.key] = session.session_id

        Log.info(
            f"Session {session.session_id} started for {document.name} "
            f"({document.display_size}, {strategy.value})"
        )
        if strategy is HandlingStrategy.PLAIN_TEXT:
            self._run_plain_text(session)
        else:
            self._run_delegated(session)
        return handle

    def extract(self, document: Document, options: ExtractionOptions) -> SessionHandle:
        return self.start(document, options)

    def cancel(self, session_id: str) -> None:
        """Cancel a session. Messages arriving afterwards are dropped."""
        self._cancel(self._get(session_id))

    def _cancel(self, session: ExtractionSession) -> None:
        session_id = session.session_id
        with session.lock:
            if session.is_terminal:
                Log.debug(f"Session {session_id} already {session.state.value}, cancel ignored")
            else:
                self._terminate(
                    session,
                    SessionState.CANCELLED,
                    ExtractionCancelledError("Cancelled by caller", page=session.current_page or None),
                )
        self._flush_callbacks(session)

    def progress(self, session_id: str) -> ProgressSnapshot:
        return self._get(session_id).snapshot()

    def state(self, session_id: str) -> SessionState:
        return self._get(session_id).state

    def session(self, session_id: str) -> ExtractionSession:
        return self._get(session_id)

    def on_progress(self, session_id: str, fn: ProgressCallback) -> None:
        session = self._get(session_id)
        with session.lock:
            listener = self._listeners.get(session_id)
            if listener is None:
                Log.debug(f"Session {session_id} already {session.state.value}, progress callback ignored")
            else:
                listener.on_progress.append(fn)

    def on_complete(self, session_id: str, fn: CompleteCallback) -> None:
        """Register a completion callback; runs immediately if already completed."""
        session = self._get(session_id)
        with session.lock:
            listener = self._listeners.get(session_id)
            if listener is not None:
                listener.on_complete.append(fn)
            elif session.state is SessionState.COMPLETED and session.result is not None:
                session.pending_callbacks.append(partial(fn, session.result))
        self._flush_callbacks(session)

    def on_error(self, session_id: str, fn: ErrorCallback) -> None:
        """Register a failure callback; runs immediately if already failed or cancelled."""
        session = self._get(session_id)
        with session.lock:
            listener = self._listeners.get(session_id)
            if listener is not None:
                listener.on_error.append(fn)
            elif session.error is not None:
                session.pending_callbacks.append(partial(fn, session.error))
        self._flush_callbacks(session)

    def shutdown(self) -> None:
        """Cancel every active session and stop all watchdogs."""
        with self._registry_lock:
            active = list(self._sessions.values())
        for session in active:
            self._cancel(session)
        self._preparation_guard.shutdown()
        self._stall_guard.shutdown()

    # Session drivers

    def _run_plain_text(self, session: ExtractionSession) -> None:
        with session.lock:
            try:
                text = self._source.read_text(session.document)
            except ReadFailureError as exc:
                self._fail(session, exc)
            else:
                session.accumulator.absorb(FullText(text=text))
                self._complete(session, session.accumulator.finalize())
        self._flush_callbacks(session)

    def _run_delegated(self, session: ExtractionSession) -> None:
        with session.lock:
            try:
                document_bytes = self._source.read_bytes(session.document)
            except ReadFailureError as exc:
                self._fail(session, exc)
            else:
                self._spawn_worker(session, document_bytes)
        self._flush_callbacks(session)

    def _spawn_worker(self, session: ExtractionSession, document_bytes: bytes) -> None:
        session_id = session.session_id
        session.transition(SessionState.PREPARING)
        Log.info(f"Session {session_id} preparing ({len(document_bytes)} bytes)")
        self._preparation_guard.arm(session_id, session.options.timeout_ms)

        request = ExtractRequest(
            document=document_bytes,
            mime_type=self._source.effective_mime_type(session.document),
            batch_size=session.options.batch_size,
            stream_partial=session.options.stream_partial,
            engine=self._engine,
        )
        transport = self._transport_factory()
        self._transports[session_id] = transport
        try:
            transport.start(
                request,
                on_line=partial(self._on_line, session),
                on_exit=partial(self._on_exit, session),
            )
        except TransportError as exc:
            self._fail(session, exc)

    # Transport and watchdog events

    def _on_line(self, session: ExtractionSession, raw: str) -> None:
        with session.lock:
            if session.is_terminal:
                Log.debug(f"Session {session.session_id} is {session.state.value}, dropping message")
            else:
                session.last_message_at = utcnow()
                self._handle_payload(session, raw)
        self._flush_callbacks(session)

    def _handle_payload(self, session: ExtractionSession, raw: str) -> None:
        try:
            message = decode(raw)
            Log.debug(f"Session {session.session_id} <- {type(message).__name__}")
            self._apply(session, message)
        except ProtocolError as exc:
            if not exc.recoverable:
                self._fail(session, exc)
                return
            Log.warning(f"Session {session.session_id}: ignoring message: {exc}")
        except ExtractionFailure as exc:
            self._fail(session, exc)

    def _on_exit(self, session: ExtractionSession, returncode: int) -> None:
        with session.lock:
            if not session.is_terminal:
                self._fail(
                    session,
                    TransportError(f"Rendering worker exited with status {returncode} before completing"),
                )
        self._flush_callbacks(session)

    def _on_preparation_timeout(self, session_id: str) -> None:
        session = self._find(session_id)
        if session is None:
            return
        with session.lock:
            if session.state is SessionState.PREPARING:
                self._fail(
                    session,
                    PreparationTimeoutError(
                        f"No page count received within {session.options.timeout_ms} ms"
                    ),
                )
        self._flush_callbacks(session)

    def _on_page_stall(self, session_id: str) -> None:
        session = self._find(session_id)
        if session is None:
            return
        with session.lock:
            if session.state is SessionState.EXTRACTING:
                self._fail(
                    session,
                    PageExtractionError(
                        f"No progress within {session.options.page_timeout_ms} ms",
                        page=session.current_page or None,
                    ),
                )
        self._flush_callbacks(session)

    # State machine

    def _apply(self, session: ExtractionSession, message: ProtocolMessage) -> None:
        if isinstance(message, Ready):
            if session.state is not SessionState.PREPARING:
                raise ProtocolError("Worker reported ready after preparation", recoverable=True)
            Log.debug(f"Session {session.session_id}: worker ready")
        elif isinstance(message, ErrorReport):
            self._fail(session, WorkerReportedError(message.message))
        elif isinstance(message, PageCount):
            self._accept_page_count(session, message.total_pages)
        elif isinstance(message, Progress):
            self._accept_progress(session, message)
        else:
            self._accept_text(session, message)

    def _accept_page_count(self, session: ExtractionSession, total: int) -> None:
        if session.total_pages is not None:
            session.set_total_pages(total)
            raise ProtocolError(f"Duplicate page count {total}", recoverable=True)
        self._begin_extraction(session, total)
        self._queue_progress(session)

    def _accept_progress(self, session: ExtractionSession, message: Progress) -> None:
        if session.total_pages is None:
            self._begin_extraction(session, message.total_pages)
        else:
            session.set_total_pages(message.total_pages)
        if message.current_page < session.current_page:
            raise ProtocolError(
                f"Stale progress for page {message.current_page}, already at {session.current_page}",
                recoverable=True,
            )
        session.transition(SessionState.EXTRACTING)
        session.current_page = message.current_page
        self._rearm_stall_guard(session)
        self._queue_progress(session)

    def _begin_extraction(self, session: ExtractionSession, total: int) -> None:
        self._preparation_guard.disarm(session.session_id)
        session.set_total_pages(total)
        session.transition(SessionState.EXTRACTING)
        Log.info(f"Session {session.session_id} extracting {total} pages")
        self._rearm_stall_guard(session)

    def _accept_text(self, session: ExtractionSession, message: TextMessage) -> None:
        if session.state is not SessionState.EXTRACTING:
            raise ProtocolViolationError("Text received before the page count")
        session.accumulator.absorb(message)
        if isinstance(message, PartialText):
            self._record_flush(session)
        if session.accumulator.is_complete:
            self._finalize(session)
        else:
            self._rearm_stall_guard(session)

    def _record_flush(self, session: ExtractionSession) -> None:
        page = session.current_page
        session.flushed_at_pages.append(page)
        batch_size = session.options.batch_size
        if page % batch_size != 0 and page != session.total_pages:
            Log.warning(
                f"Session {session.session_id}: flush at page {page} is off the "
                f"batch boundary (batch size {batch_size})"
            )

    def _finalize(self, session: ExtractionSession) -> None:
        session.transition(SessionState.FINALIZING)
        if session.current_page != session.total_pages:
            Log.warning(
                f"Session {session.session_id}: final text at page "
                f"{session.current_page}/{session.total_pages}"
            )
        self._complete(session, session.accumulator.finalize())

    def _complete(self, session: ExtractionSession, text: str) -> None:
        session.result = text
        session.transition(SessionState.COMPLETED)
        Log.info(f"Session {session.session_id} completed: {len(text)} chars")
        self._handles[session.session_id]._resolve(text)
        for fn in self._listeners[session.session_id].on_complete:
            session.pending_callbacks.append(partial(fn, text))
        self._teardown(session)

    def _fail(self, session: ExtractionSession, raw: BaseException) -> None:
        preparing = session.state in (SessionState.IDLE, SessionState.PREPARING)
        error = self._classifier.classify(
            raw, page=None if preparing else session.current_page or None, preparing=preparing
        )
        state = SessionState.CANCELLED if error.kind is ErrorKind.CANCELLED else SessionState.FAILED
        self._terminate(session, state, ExtractionFailure.from_error(error))

    def _terminate(
        self,
        session: ExtractionSession,
        state: SessionState,
        failure: ExtractionFailure,
    ) -> None:
        error = failure.to_error()
        session.error = error
        session.transition(state)
        if state is SessionState.CANCELLED:
            Log.info(f"Session {session.session_id} cancelled")
        else:
            Log.error(f"Session {session.session_id} failed: {error}")
        self._handles[session.session_id]._reject(failure)
        for fn in self._listeners[session.session_id].on_error:
            session.pending_callbacks.append(partial(fn, error))
        self._teardown(session)

    def _teardown(self, session: ExtractionSession) -> None:
        """Stop watchdogs, kill the worker and move the session to the archive.

        Already-queued callbacks stay on the session and are flushed by the caller.
        """
        session_id = session.session_id
        self._preparation_guard.disarm(session_id)
        self._stall_guard.disarm(session_id)
        transport = self._transports.pop(session_id, None)
        if transport is not None:
            transport.terminate()
        with self._registry_lock:
            if self._active_by_key.get(session.document.key) == session_id:
                del self._active_by_key[session.document.key]
            self._sessions.pop(session_id, None)
            self._handles.pop(session_id, None)
            self._listeners.pop(session_id, None)
            self._archive[session_id] = session
            while len(self._archive) > self._archive_size:
                self._archive.popitem(last=False)

    # Helpers

    def _rearm_stall_guard(self, session: ExtractionSession) -> None:
        if session.options.page_timeout_ms is not None:
            self._stall_guard.arm(session.session_id, session.options.page_timeout_ms)

    def _queue_progress(self, session: ExtractionSession) -> None:
        if session.total_pages is None:
            return
        for fn in self._listeners[session.session_id].on_progress:
            session.pending_callbacks.append(
                partial(fn, session.current_page, session.total_pages)
            )

    def _flush_callbacks(self, session: ExtractionSession) -> None:
        """Run queued callbacks in queue order, one dispatching thread at a time."""
        with session.dispatch_lock:
            while True:
                with session.lock:
                    pending = session.pending_callbacks
                    session.pending_callbacks = []
                if not pending:
                    return
                for callback in pending:
                    try:
                        callback()
                    except Exception as exc:
                        Log.warning(f"Session {session.session_id}: callback raised: {exc}")

    def _find(self, session_id: str) -> ExtractionSession | None:
        with self._registry_lock:
            return self._sessions.get(session_id) or self._archive.get(session_id)

    def _get(self, session_id: str) -> ExtractionSession:
        session = self._find(session_id)
        if session is None:
            raise KeyError(f"Unknown session {session_id}")
        return session


def build_orchestrator(settings: Settings) -> ExtractionOrchestrator:
    """Build an orchestrator that spawns subprocess rendering workers."""
    source = DocumentSource(encoding=settings.text_encoding)
    return ExtractionOrchestrator(
        source=source,
        transport_factory=lambda: SubprocessTransport(
            python=settings.worker_python,
            grace_seconds=settings.worker_shutdown_grace_seconds,
        ),
        engine=settings.pdf_engine,
        archive_size=settings.session_archive_size,
    )
