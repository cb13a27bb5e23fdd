# src/config/settings.py - v3
"""Typed configuration loaded from .env / environment via pydantic-settings.

Single source of truth for cache sizes, worker counts, batch behaviour and
logging. Environment variables use the field names (case-insensitive), with
an RPGMVIEW_ prefix.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rpgmview.keys.store import parse_key


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_prefix="RPGMVIEW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Key / codec ===
    encryption_key: str | None = None
    asset_version: Literal["mv", "mz"] = "mv"
    verify_signature: bool = False
    restore_headers: bool = False

    # === Thumbnails ===
    thumbnail_size: int = 128
    thumbnail_cache_capacity: int = 200
    thumbnail_cache_ttl: float = 300.0  # seconds, 0 disables expiry
    thumbnail_workers: int = 2

    # === Batch ===
    batch_workers: int = 4
    batch_remove_source: bool = False
    batch_output_dir: Path | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("encryption_key")
    @classmethod
    def validate_encryption_key(cls, v: str | None) -> str | None:  # noqa: N805
        """Key must be 32 hex characters when set; empty means unset."""
        if v is None or not v.strip():
            return None
        return parse_key(v).hex

    @field_validator(
        "thumbnail_size", "thumbnail_cache_capacity", "thumbnail_workers", "batch_workers",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Cross-field rules."""
        errors: list[str] = []

        if self.log_retention < 0:
            errors.append("LOG_RETENTION must be >= 0")

        if self.thumbnail_cache_ttl < 0:
            errors.append("THUMBNAIL_CACHE_TTL must be >= 0")

        if self.batch_output_dir is not None:
            out = self.batch_output_dir.expanduser()
            if out.exists() and not out.is_dir():
                errors.append("BATCH_OUTPUT_DIR exists and is not a directory")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
