import mimetypes
from enum import Enum
from typing import ClassVar

from doctext.errors.exceptions import ReadFailureError
from doctext.source.models import Document, path_from_uri


class HandlingStrategy(str, Enum):
    PLAIN_TEXT = "plain_text"
    DELEGATED = "delegated"
    UNSUPPORTED = "unsupported"


class DocumentSource:
    """Classifies documents and performs direct reads.

    Plain-text documents are read here to completion; paginated binaries are
    only loaded as bytes and handed to the rendering worker.
    """

    PLAIN_TEXT_TYPES: ClassVar[frozenset[str]] = frozenset({"text/plain"})
    DELEGATED_TYPES: ClassVar[frozenset[str]] = frozenset({"application/pdf"})

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding

    def classify(self, document: Document) -> HandlingStrategy:
        mime_type = self.effective_mime_type(document)
        if mime_type in self.PLAIN_TEXT_TYPES:
            return HandlingStrategy.PLAIN_TEXT
        if mime_type in self.DELEGATED_TYPES:
            return HandlingStrategy.DELEGATED
        return HandlingStrategy.UNSUPPORTED

    def effective_mime_type(self, document: Document) -> str:
        """Normalized mime type, falling back to the file extension when blank."""
        mime_type = document.mime_type.split(";", 1)[0].strip().lower()
        if mime_type:
            return mime_type
        guessed = mimetypes.guess_type(document.name or document.uri)[0]
        return (guessed or "").lower()

    def read_text(self, document: Document) -> str:
        """Read a plain-text document to completion.

        Raises:
            ReadFailureError: if the file is missing or cannot be decoded.
        """
        path = path_from_uri(document.uri)
        try:
            return path.read_text(encoding=self._encoding)
        except (OSError, UnicodeDecodeError) as exc:
            raise ReadFailureError(f"Failed to read text document {document.name}: {exc}") from exc

    def read_bytes(self, document: Document) -> bytes:
        """Load a delegated document's bytes for the worker.

        Raises:
            ReadFailureError: if the file is missing, unreadable or empty.
        """
        path = path_from_uri(document.uri)
        try:
            data = path.read_bytes()
        except OSError as exc:
            raise ReadFailureError(f"Failed to read document {document.name}: {exc}") from exc
        if not data:
            raise ReadFailureError(f"Document {document.name} is empty")
        return data
