from typing import Any

import pymupdf

from doctext.pdf.base import BasePdfExtractor, OpenedPdf
from doctext.pdf.exceptions import PdfExtractionError


class _PyMuPdfDocument(OpenedPdf):
    def __init__(self, doc: Any) -> None:
        self._doc = doc

    @property
    def page_count(self) -> int:
        return int(self._doc.page_count)

    def page_text(self, index: int) -> str:
        try:
            return str(self._doc[index].get_text()).strip()
        except Exception as exc:
            raise PdfExtractionError(f"pymupdf failed on page {index + 1}: {exc}") from exc

    def close(self) -> None:
        self._doc.close()


class PyMuPdfAdapter(BasePdfExtractor):
    """Extracts text from PDF using PyMuPDF."""

    def open(self, pdf_bytes: bytes) -> OpenedPdf:
        try:
            doc = pymupdf.open(stream=pdf_bytes, filetype="pdf")  # type: ignore[no-untyped-call]
        except Exception as exc:
            raise PdfExtractionError(f"pymupdf could not open document: {exc}") from exc
        return _PyMuPdfDocument(doc)
