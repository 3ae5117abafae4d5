from doctext.orchestrator.handle import SessionHandle
from doctext.orchestrator.orchestrator import (
    ExtractionListener,
    ExtractionOrchestrator,
    build_orchestrator,
)
from doctext.orchestrator.session import (
    ExtractionOptions,
    ExtractionSession,
    ProgressSnapshot,
    SessionState,
)

__all__ = [
    "ExtractionListener",
    "ExtractionOptions",
    "ExtractionOrchestrator",
    "ExtractionSession",
    "ProgressSnapshot",
    "SessionHandle",
    "SessionState",
    "build_orchestrator",
]
