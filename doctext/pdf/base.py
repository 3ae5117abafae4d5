from abc import ABC, abstractmethod
from types import TracebackType


class OpenedPdf(ABC):
    """An open document whose pages can be read one at a time."""

    @property
    @abstractmethod
    def page_count(self) -> int:
        """Number of pages in the document."""

    @abstractmethod
    def page_text(self, index: int) -> str:
        """Extract plain text of the page at zero-based ``index``.

        Raises:
            PdfExtractionError: if the page cannot be read.
        """

    @abstractmethod
    def close(self) -> None:
        """Release engine resources."""

    def __enter__(self) -> "OpenedPdf":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class BasePdfExtractor(ABC):
    """Contract for all PDF text extraction adapters."""

    @abstractmethod
    def open(self, pdf_bytes: bytes) -> OpenedPdf:
        """Open PDF bytes for page-by-page extraction.

        Args:
            pdf_bytes: Raw PDF file content.

        Raises:
            PdfExtractionError: if the document cannot be opened.
        """

    def extract(self, pdf_bytes: bytes) -> str:
        """Extract the whole document, one newline-terminated line block per page."""
        with self.open(pdf_bytes) as pdf:
            return "".join(f"{pdf.page_text(i)}\n" for i in range(pdf.page_count))
