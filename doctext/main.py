import dataclasses
import sys
from pathlib import Path

import typer

from doctext.config.settings import Settings
from doctext.errors.exceptions import ExtractionFailure
from doctext.logging.logger import Log
from doctext.orchestrator.orchestrator import ExtractionListener, build_orchestrator
from doctext.orchestrator.session import ExtractionOptions
from doctext.source.models import Document

app = typer.Typer(
    name="doctext",
    help="Extract plain text from PDF and text documents.",
    add_completion=False,
)


def _print_progress(current: int, total: int) -> None:
    typer.echo(f"Extracting text: page {current} of {total}", err=True)


@app.command()
def extract(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True),
    mime_type: str | None = typer.Option(None, "--mime-type", help="Override the guessed mime type"),
    timeout_ms: int | None = typer.Option(None, "--timeout-ms", min=1, help="Preparation deadline"),
    batch_size: int | None = typer.Option(None, "--batch-size", min=1, help="Pages per partial flush"),
    engine: str | None = typer.Option(None, "--engine", help="pdfplumber or pymupdf"),
) -> None:
    """Extract text from a document and print it to stdout."""
    settings = Settings()
    if engine:
        settings = settings.model_copy(update={"pdf_engine": engine})
    Log.configure(settings.log_level, stream=sys.stderr)

    options = ExtractionOptions.from_settings(settings)
    if timeout_ms is not None:
        options = dataclasses.replace(options, timeout_ms=timeout_ms)
    if batch_size is not None:
        options = dataclasses.replace(options, batch_size=batch_size)

    document = Document.from_path(path, mime_type)
    orchestrator = build_orchestrator(settings)
    try:
        handle = orchestrator.start(
            document, options, ExtractionListener(on_progress=[_print_progress])
        )
        text = handle.result()
    except ExtractionFailure as exc:
        typer.echo(f"Extraction failed: {exc.to_error()}", err=True)
        raise typer.Exit(code=1) from exc
    finally:
        orchestrator.shutdown()
    typer.echo(text, nl=False)


def main() -> None:
    """Entry point: parse arguments -> build orchestrator -> run one extraction."""
    app()


if __name__ == "__main__":
    main()
