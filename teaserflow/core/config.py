"""Application configuration settings.

This module defines the client-wide settings using Pydantic's BaseSettings.
Values are loaded from environment variables (prefixed ``TEASERFLOW_``) and an
optional .env file, with type validation and defaults suitable for a local
teaser service.
"""

import logging
from pathlib import Path

from pydantic import Field
from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Manages client settings, loading them from environment variables or an .env file.

    Attributes:
        api_base_url: Base URL of the remote teaser service (without the /api prefix).
        http_connect_timeout: Connect timeout in seconds for every remote call.
        http_read_timeout: Read timeout in seconds; None leaves reads unbounded.
        session_store_path: JSON file backing the durable session store.
        download_dir: Default directory for downloaded teaser PDFs.
        max_file_size_bytes: Largest candidate file accepted into an upload batch.
        max_files: Maximum number of files queued in one upload batch.
        preview_snippet_chars: Display length of upload preview text.
        export_fetch_attempts: Attempts for the idempotent export download.
        log_level: Level applied to the teaserflow loggers.
    """

    api_base_url: str = Field(default="http://localhost:8000")
    http_connect_timeout: float = Field(default=10.0, description="Connect timeout in seconds.")
    http_read_timeout: float | None = Field(default=None, description="Read timeout in seconds.")

    session_store_path: Path = Field(default=Path(".teaserflow/session.json"))
    download_dir: Path = Field(default=Path("downloads"))

    max_file_size_bytes: int = Field(default=25 * 1024 * 1024)
    max_files: int = Field(default=20)
    preview_snippet_chars: int = Field(default=300)

    export_fetch_attempts: int = Field(default=3, ge=1)

    log_level: str = Field(default="INFO")

    model_config = {
        "env_file": ".env",
        "env_prefix": "TEASERFLOW_",
        "extra": "ignore",
    }

    @field_validator("api_base_url")  # type: ignore
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalizes the base URL so paths can be appended with a leading slash."""
        return v.rstrip("/")

    @field_validator("log_level")  # type: ignore
    @classmethod
    def check_log_level(cls, v: str) -> str:
        """Accepts only level names known to the logging module."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level


settings = Settings()
