import pytest

from doctext.pdf.exceptions import PdfExtractionError
from doctext.pdf.pdfplumber_adapter import PdfPlumberAdapter


class TestPdfPlumberAdapter:
    def test_extract_returns_text(self, sample_pdf_bytes: bytes) -> None:
        adapter = PdfPlumberAdapter()
        result = adapter.extract(sample_pdf_bytes)
        assert isinstance(result, str)
        assert "Hello PDF World" in result

    def test_extract_multi_page(self, multi_page_pdf_bytes: bytes) -> None:
        adapter = PdfPlumberAdapter()
        result = adapter.extract(multi_page_pdf_bytes)
        assert result.index("Page one content") < result.index("Page two content")

    def test_extract_terminates_every_page_with_newline(self, multi_page_pdf_bytes: bytes) -> None:
        result = PdfPlumberAdapter().extract(multi_page_pdf_bytes)
        assert result == "Page one content\nPage two content\n"

    def test_blank_page_yields_bare_newline(self, empty_pdf_bytes: bytes) -> None:
        adapter = PdfPlumberAdapter()
        assert adapter.extract(empty_pdf_bytes) == "\n"

    def test_open_reports_page_count(self, ten_page_pdf_bytes: bytes) -> None:
        with PdfPlumberAdapter().open(ten_page_pdf_bytes) as pdf:
            assert pdf.page_count == 10
            assert pdf.page_text(3) == "Page 4 content"

    def test_page_text_is_stripped(self, sample_pdf_bytes: bytes) -> None:
        with PdfPlumberAdapter().open(sample_pdf_bytes) as pdf:
            text = pdf.page_text(0)
        assert text == text.strip()

    def test_open_raises_on_invalid_bytes(self) -> None:
        adapter = PdfPlumberAdapter()
        with pytest.raises(PdfExtractionError):
            adapter.open(b"not a pdf")
