class TransportError(Exception):
    """Raised when the rendering worker cannot be spawned or dies mid-session."""


class WorkerReportedError(Exception):
    """Failure reported by the worker through an ``error`` message."""
