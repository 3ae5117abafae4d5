import threading
from collections.abc import Callable
from typing import Protocol


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]


def daemon_timer(interval: float, function: Callable[[], None]) -> Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class TimeoutGuard:
    """Per-session watchdog: calls ``on_expire(session_id)`` unless disarmed in time.

    A given arming fires at most once; re-arming replaces the previous deadline.
    """

    def __init__(
        self,
        on_expire: Callable[[str], None],
        timer_factory: TimerFactory = daemon_timer,
    ) -> None:
        self._on_expire = on_expire
        self._timer_factory = timer_factory
        self._timers: dict[str, tuple[object, Timer]] = {}
        self._lock = threading.Lock()

    def arm(self, session_id: str, deadline_ms: int) -> None:
        if deadline_ms <= 0:
            raise ValueError(f"deadline_ms must be positive, got {deadline_ms}")
        token = object()
        timer = self._timer_factory(deadline_ms / 1000, lambda: self._fire(session_id, token))
        with self._lock:
            previous = self._timers.pop(session_id, None)
            self._timers[session_id] = (token, timer)
        if previous is not None:
            previous[1].cancel()
        timer.start()

    def disarm(self, session_id: str) -> bool:
        """Cancel the pending deadline. Returns False if nothing was armed."""
        with self._lock:
            entry = self._timers.pop(session_id, None)
        if entry is None:
            return False
        entry[1].cancel()
        return True

    def is_armed(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._timers

    def shutdown(self) -> None:
        with self._lock:
            entries = list(self._timers.values())
            self._timers.clear()
        for _token, timer in entries:
            timer.cancel()

    def _fire(self, session_id: str, token: object) -> None:
        with self._lock:
            entry = self._timers.get(session_id)
            if entry is None or entry[0] is not token:
                return
            del self._timers[session_id]
        self._on_expire(session_id)
