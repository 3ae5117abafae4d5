from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    extraction_timeout_ms: int = Field(default=30000, gt=0)
    extraction_batch_size: int = Field(default=5, gt=0)
    extraction_page_timeout_ms: int | None = Field(default=None, gt=0)
    extraction_stream_partial: bool = True

    pdf_engine: str = "pdfplumber"

    worker_python: str = ""
    worker_shutdown_grace_seconds: float = 5.0

    text_encoding: str = "utf-8"

    # terminal sessions kept for late lookups and callback replay
    session_archive_size: int = Field(default=32, ge=0)
