"""Typedrow settings.

Environment-driven defaults for executors and logging, read through
pydantic-settings.  Every field can be set with a ``TYPEDROW_`` prefixed
environment variable or in a ``.env`` file.

Examples:
    >>> import os
    >>> os.environ["TYPEDROW_DIALECT"] = "sqlite3"
    >>> reset_settings()
    >>> get_settings().dialect
    'sqlite3'

Tags:
    settings, configuration, pydantic, environment, typedrow

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TypedRowSettings(BaseSettings):
    """Library-wide defaults.

    Fields
    ──────
    dialect      : Dialect used by executors that are not given one
    log_queries  : Executors log each statement at debug level
    log_args     : Include (redacted) bind arguments in statement logs
    log_level    : Level used by ``configure_logging``
    json_logs    : JSON renderer on/off; unset auto-detects from the TTY
    service_name : ``service.name`` on every structured event
    """

    model_config = SettingsConfigDict(
        env_prefix="TYPEDROW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── SQL ──────────────────────────────────────────────────────
    dialect: str = "postgres"

    # ── Observability ────────────────────────────────────────────
    log_queries: bool = True
    log_args: bool = True
    log_level: str = "INFO"
    json_logs: bool | None = None
    service_name: str = Field(default="typedrow", description="Service name on log events")

    @field_validator("dialect", "log_level")
    @classmethod
    def _normalise(cls, value: str) -> str:
        return value.strip()


@lru_cache(maxsize=1)
def get_settings() -> TypedRowSettings:
    """Cached settings, loaded once per process."""
    return TypedRowSettings()


def reset_settings() -> None:
    """Forget cached settings so the next call re-reads the environment."""
    get_settings.cache_clear()


__all__ = ["TypedRowSettings", "get_settings", "reset_settings"]
