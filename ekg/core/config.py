"""Application configuration using Pydantic Settings v2.

Loads configuration from environment variables (``EKG_`` prefix) with .env
file support. All settings are validated at startup and available as typed
attributes.
"""

from __future__ import annotations

import functools

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_EXPORT_FORMATS = {"json", "csv"}


class Settings(BaseSettings):
    """EKG application settings.

    Configuration is loaded from environment variables.
    A .env file in the project root is also read if present.
    """

    model_config = SettingsConfigDict(
        env_prefix="EKG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ──────────────────────────────────────────────
    app_name: str = "EKG"
    app_env: str = "development"
    log_level: str = "INFO"

    # ── Graph construction ───────────────────────────────────────
    log_id: str = "log"
    workers: int = 1
    pipeline_config_path: str | None = None

    # ── Export ───────────────────────────────────────────────────
    export_dir: str = "ekg_export"
    export_format: str = "json"

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Upper-case the level and reject names the logging module does not know."""
        level = str(v).upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v!r}")
        return level

    @field_validator("workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        if v < 1:
            raise ValueError("workers must be >= 1")
        return v

    @field_validator("export_format", mode="before")
    @classmethod
    def validate_export_format(cls, v: str) -> str:
        fmt = str(v).lower()
        if fmt not in _EXPORT_FORMATS:
            raise ValueError(f"export_format must be one of {sorted(_EXPORT_FORMATS)}")
        return fmt


@functools.lru_cache
def get_settings() -> Settings:
    """Return cached application settings instance."""
    return Settings()
