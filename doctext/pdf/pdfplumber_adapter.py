import io
from typing import Any

import pdfplumber

from doctext.pdf.base import BasePdfExtractor, OpenedPdf
from doctext.pdf.exceptions import PdfExtractionError


class _PdfPlumberDocument(OpenedPdf):
    def __init__(self, pdf: Any) -> None:
        self._pdf = pdf

    @property
    def page_count(self) -> int:
        return len(self._pdf.pages)

    def page_text(self, index: int) -> str:
        try:
            return (self._pdf.pages[index].extract_text() or "").strip()
        except Exception as exc:
            raise PdfExtractionError(
                f"pdfplumber failed on page {index + 1}: {exc}"
            ) from exc

    def close(self) -> None:
        self._pdf.close()


class PdfPlumberAdapter(BasePdfExtractor):
    """Extracts text from PDF using pdfplumber."""

    def open(self, pdf_bytes: bytes) -> OpenedPdf:
        try:
            pdf = pdfplumber.open(io.BytesIO(pdf_bytes))
            # pdfplumber parses lazily; touching pages surfaces corrupt input here
            _ = pdf.pages
        except Exception as exc:
            raise PdfExtractionError(f"pdfplumber could not open document: {exc}") from exc
        return _PdfPlumberDocument(pdf)
