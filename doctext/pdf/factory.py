from doctext.pdf.base import BasePdfExtractor
from doctext.pdf.pdfplumber_adapter import PdfPlumberAdapter
from doctext.pdf.pymupdf_adapter import PyMuPdfAdapter


class PdfExtractorFactory:
    """Creates the PDF engine adapter requested by the orchestrator."""

    ADAPTERS: dict[str, type[BasePdfExtractor]] = {
        "pdfplumber": PdfPlumberAdapter,
        "pymupdf": PyMuPdfAdapter,
    }

    @classmethod
    def create(cls, engine: str) -> BasePdfExtractor:
        adapter_cls = cls.ADAPTERS.get(engine.lower())
        if adapter_cls is None:
            raise ValueError(
                f"Unknown PDF engine '{engine}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls()
