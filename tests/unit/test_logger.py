import io
import logging
from collections.abc import Generator

import pytest

from doctext.logging.logger import Log


@pytest.fixture()
def clean_logger() -> Generator[logging.Logger, None, None]:
    logger = logging.getLogger("doctext")
    saved_handlers, saved_level = logger.handlers[:], logger.level
    logger.handlers = []
    yield logger
    logger.handlers = saved_handlers
    logger.setLevel(saved_level)


class TestLog:
    def test_writes_to_configured_stream(self, clean_logger: logging.Logger) -> None:
        stream = io.StringIO()
        Log.configure("info", stream=stream)

        Log.info("worker ready")
        Log.debug("hidden")

        output = stream.getvalue()
        assert "[INFO] worker ready" in output
        assert "hidden" not in output

    def test_configure_twice_keeps_one_handler(self, clean_logger: logging.Logger) -> None:
        Log.configure("INFO", stream=io.StringIO())
        Log.configure("DEBUG", stream=io.StringIO())

        assert len(clean_logger.handlers) == 1
        assert clean_logger.level == logging.DEBUG
