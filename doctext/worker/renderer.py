"""Rendering worker process.

Run as ``python -m doctext.worker.renderer``. Reads one extract request line
from stdin and writes one JSON protocol message per line to stdout. The host
owns the process lifecycle; this side owns document parsing.
"""

import sys
from collections.abc import Callable
from typing import TextIO

from doctext.config.settings import Settings
from doctext.logging.logger import Log
from doctext.pdf.base import BasePdfExtractor, OpenedPdf
from doctext.pdf.exceptions import PdfExtractionError
from doctext.pdf.factory import PdfExtractorFactory
from doctext.protocol.codec import decode_request, encode
from doctext.protocol.exceptions import ProtocolError
from doctext.protocol.messages import (
    ErrorReport,
    ExtractRequest,
    FullText,
    PageCount,
    PartialText,
    Progress,
    ProtocolMessage,
    Ready,
)


class Renderer:
    """Extracts pages and streams protocol messages to an output stream."""

    def __init__(
        self,
        out: TextIO,
        extractor_factory: Callable[[str], BasePdfExtractor] = PdfExtractorFactory.create,
    ) -> None:
        self._out = out
        self._extractor_factory = extractor_factory

    def run(self, raw_request: str) -> int:
        """Handle one request. Returns the process exit status."""
        try:
            request = decode_request(raw_request)
        except ProtocolError as exc:
            Log.error(f"Rejected extract request: {exc}")
            self._emit(ErrorReport(message=str(exc)))
            return 1

        self._emit(Ready())
        try:
            extractor = self._extractor_factory(request.engine)
            with extractor.open(request.document) as pdf:
                total = pdf.page_count
                if total < 1:
                    raise PdfExtractionError("Document has no pages")
                self._emit(PageCount(total_pages=total))
                self._extract_pages(pdf, total, request)
        except Exception as exc:
            Log.error(f"Extraction failed: {exc}")
            self._emit(ErrorReport(message=str(exc) or type(exc).__name__))
            return 1
        return 0

    def _extract_pages(self, pdf: OpenedPdf, total: int, request: ExtractRequest) -> None:
        pending: list[str] = []
        for page in range(1, total + 1):
            self._emit(Progress(current_page=page, total_pages=total))
            pending.append(f"{pdf.page_text(page - 1)}\n")
            if not request.stream_partial:
                continue
            if page % request.batch_size == 0 or page == total:
                self._emit(PartialText(text="".join(pending), is_final=page == total))
                Log.debug(f"Flushed {len(pending)} pages at page {page}/{total}")
                pending = []
        if not request.stream_partial:
            self._emit(FullText(text="".join(pending)))

    def _emit(self, message: ProtocolMessage) -> None:
        self._out.write(encode(message) + "\n")
        self._out.flush()


def main() -> None:
    # stdout carries the message stream, so logs go to stderr
    Log.configure(Settings().log_level, stream=sys.stderr)
    raw_request = sys.stdin.readline()
    sys.exit(Renderer(sys.stdout).run(raw_request))


if __name__ == "__main__":
    main()
