"""Closed set of messages crossing the orchestrator/worker boundary."""

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class PageCount:
    """Worker opened the document and knows how many pages it has."""

    tag: ClassVar[str] = "pageCount"

    total_pages: int


@dataclass(frozen=True)
class Progress:
    """Worker started extracting `current_page` (1-based)."""

    tag: ClassVar[str] = "progress"

    current_page: int
    total_pages: int


@dataclass(frozen=True)
class PartialText:
    """A flushed chunk of text; `is_final` marks the last chunk."""

    tag: ClassVar[str] = "partialText"

    text: str
    is_final: bool


@dataclass(frozen=True)
class FullText:
    """The whole document text delivered in one message."""

    tag: ClassVar[str] = "fullText"

    text: str


@dataclass(frozen=True)
class ErrorReport:
    """Worker-reported failure."""

    tag: ClassVar[str] = "error"

    message: str


@dataclass(frozen=True)
class Ready:
    """Worker received its request and is about to open the document."""

    tag: ClassVar[str] = "ready"


ProtocolMessage = PageCount | Progress | PartialText | FullText | ErrorReport | Ready
TextMessage = PartialText | FullText


@dataclass(frozen=True)
class ExtractRequest:
    """Outbound request sent once to a freshly spawned worker."""

    tag: ClassVar[str] = "extract"

    document: bytes
    mime_type: str
    batch_size: int
    stream_partial: bool = True
    engine: str = "pdfplumber"
