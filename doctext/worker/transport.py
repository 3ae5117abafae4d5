import subprocess
import sys
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable

from doctext.logging.logger import Log
from doctext.protocol.codec import encode_request
from doctext.protocol.messages import ExtractRequest
from doctext.worker.exceptions import TransportError

LineHandler = Callable[[str], None]
ExitHandler = Callable[[int], None]


class WorkerTransport(ABC):
    """Capability interface between the orchestrator and one rendering worker.

    Implementations must deliver lines to ``on_line`` in emission order from a
    single thread, then call ``on_exit`` exactly once.
    """

    @abstractmethod
    def start(self, request: ExtractRequest, on_line: LineHandler, on_exit: ExitHandler) -> None:
        """Spawn the worker and send it the request. Must not block on the worker.

        Raises:
            TransportError: if the worker cannot be spawned.
        """

    @abstractmethod
    def terminate(self) -> None:
        """Tear the worker down. Safe to call more than once."""


class SubprocessTransport(WorkerTransport):
    """Runs the rendering worker as a child process speaking JSON lines."""

    WORKER_MODULE = "doctext.worker.renderer"

    def __init__(self, python: str = "", grace_seconds: float = 5.0) -> None:
        self._python = python or sys.executable
        self._grace_seconds = grace_seconds
        self._process: subprocess.Popen[str] | None = None
        self._reader: threading.Thread | None = None

    def start(self, request: ExtractRequest, on_line: LineHandler, on_exit: ExitHandler) -> None:
        try:
            self._process = subprocess.Popen(
                [self._python, "-m", self.WORKER_MODULE],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
                encoding="utf-8",
            )
        except OSError as exc:
            raise TransportError(f"Failed to spawn rendering worker: {exc}") from exc
        Log.debug(f"Spawned rendering worker pid={self._process.pid}")
        self._reader = threading.Thread(
            target=self._pump,
            args=(self._process, encode_request(request), on_line, on_exit),
            name=f"doctext-worker-{self._process.pid}",
            daemon=True,
        )
        self._reader.start()

    def _pump(
        self,
        process: "subprocess.Popen[str]",
        payload: str,
        on_line: LineHandler,
        on_exit: ExitHandler,
    ) -> None:
        if process.stdin is None or process.stdout is None:
            raise ValueError("Worker process must be spawned with piped stdin/stdout")
        try:
            try:
                process.stdin.write(payload + "\n")
                process.stdin.close()
            except OSError as exc:
                Log.warning(f"Could not send request to worker pid={process.pid}: {exc}")
            for line in process.stdout:
                line = line.strip()
                if line:
                    on_line(line)
        except (OSError, ValueError) as exc:
            Log.warning(f"Lost worker pid={process.pid} output stream: {exc}")
        finally:
            on_exit(process.wait())

    def terminate(self) -> None:
        process = self._process
        if process is None or process.poll() is not None:
            return
        Log.debug(f"Terminating rendering worker pid={process.pid}")
        process.terminate()
        try:
            process.wait(timeout=self._grace_seconds)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
