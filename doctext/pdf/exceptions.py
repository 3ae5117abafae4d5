class PdfExtractionError(Exception):
    """Raised when a PDF engine cannot open a document or read a page."""
