# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Cache backend ===
    cache_backend: Literal["memory", "sqlite", "redis"] = "memory"
    cache_root: Path = Path("~/.tallycache/cache")
    cache_redis_url: str = ""
    cache_key_prefix: str = "tallycache"

    # === Read-through behaviour ===
    ttl_scale_factor: float = 60.0
    ttl_ceiling_seconds: float = 3600.0
    lock_timeout_seconds: float = 30.0
    lock_poll_interval_seconds: float = 0.05
    stale_grace_seconds: float = 300.0

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator(
        "ttl_scale_factor",
        "ttl_ceiling_seconds",
        "lock_timeout_seconds",
        "lock_poll_interval_seconds",
    )
    @classmethod
    def validate_positive(cls, v: float, info) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("stale_grace_seconds")
    @classmethod
    def validate_stale_grace(cls, v: float) -> float:  # noqa: N805
        if v < 0:
            raise ValueError("stale_grace_seconds must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.lock_poll_interval_seconds >= self.lock_timeout_seconds:
            errors.append(
                "LOCK_POLL_INTERVAL_SECONDS must be < LOCK_TIMEOUT_SECONDS"
            )

        if self.cache_backend == "redis" and not self.cache_redis_url:
            errors.append("CACHE_REDIS_URL must be set when CACHE_BACKEND=redis")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def sqlite_path(self) -> Path:
        """Database file used by the sqlite backend."""
        return self.cache_root.expanduser() / "tallycache.db"


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-process config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
