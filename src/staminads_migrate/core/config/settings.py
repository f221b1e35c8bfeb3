"""
Centralized settings for the migration coordinator.

:class:`MigrateSettings` reads ``STAMINADS_*`` environment variables (and a
``.env`` file) once, validates them, and is cached by :func:`get_settings`.
The ClickHouse connection fields also accept the bare ``CLICKHOUSE_*``
names the API service reads, so one environment configures both.

Tags:
    configuration, settings, pydantic, caching, validation
"""

from __future__ import annotations

import re
from datetime import timedelta

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class MigrateSettings(BaseSettings):
    """Coordinator configuration.

    All fields can be set via ``STAMINADS_*`` environment variables (e.g.
    ``STAMINADS_CLICKHOUSE_HOST=http://clickhouse:8123``).
    """

    model_config = SettingsConfigDict(
        env_prefix="STAMINADS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── ClickHouse ───────────────────────────────────────────────
    clickhouse_host: str = Field(
        default="http://localhost:8123",
        validation_alias=AliasChoices("STAMINADS_CLICKHOUSE_HOST", "CLICKHOUSE_HOST"),
    )
    clickhouse_user: str = Field(
        default="default",
        validation_alias=AliasChoices("STAMINADS_CLICKHOUSE_USER", "CLICKHOUSE_USER"),
    )
    clickhouse_password: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("STAMINADS_CLICKHOUSE_PASSWORD", "CLICKHOUSE_PASSWORD"),
    )
    clickhouse_connect_timeout: int = Field(default=10, gt=0)

    # ── Databases ────────────────────────────────────────────────
    system_database: str = Field(
        default="staminads_system",
        validation_alias=AliasChoices(
            "STAMINADS_SYSTEM_DATABASE", "CLICKHOUSE_SYSTEM_DATABASE"
        ),
    )
    workspace_prefix: str = Field(default="staminads_ws")

    # ── Lease ────────────────────────────────────────────────────
    lock_stale_seconds: int = Field(
        default=300,
        gt=0,
        description="Age after which a migration lease is presumed abandoned",
    )
    wait_poll_seconds: float = Field(
        default=5.0,
        gt=0,
        description="Delay between attempts when waiting for another instance",
    )

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto", description="json | console | auto")

    @field_validator("system_database", "workspace_prefix")
    @classmethod
    def _validate_identifier(cls, value: str) -> str:
        if not _IDENTIFIER.match(value):
            raise ValueError(f"{value!r} is not a valid ClickHouse identifier")
        return value

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level {value!r}")
        return level

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        fmt = value.lower()
        if fmt not in {"json", "console", "auto"}:
            raise ValueError(f"log_format must be json, console or auto, got {value!r}")
        return fmt

    # ── Derived properties ───────────────────────────────────────

    @property
    def lock_stale_after(self) -> timedelta:
        return timedelta(seconds=self.lock_stale_seconds)

    @property
    def json_logs(self) -> bool | None:
        """``None`` lets the logging setup auto-detect from the terminal."""
        if self.log_format == "auto":
            return None
        return self.log_format == "json"


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, MigrateSettings] = {}


def get_settings(*, _force_reload: bool = False) -> MigrateSettings:
    """Load, validate, and cache a :class:`MigrateSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = MigrateSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, config reload)."""
    _settings_cache.clear()


__all__ = ["MigrateSettings", "get_settings", "clear_settings_cache"]
