"""
Key/value settings table in the system database.

``system_settings`` is a ReplacingMergeTree keyed on ``key`` and versioned by
``updated_at``: writes are plain inserts, reads use ``FINAL`` so each key
resolves to its newest row. The coordinator owns two keys in it
(``db_major_version`` and ``migration_lock``); other keys belong to the
rest of the platform and are never touched here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from staminads_migrate.core.logging import get_logger
from staminads_migrate.core.protocols import AnalyticsClient

logger = get_logger(__name__)

SETTINGS_TABLE = "system_settings"

VERSION_KEY = "db_major_version"
LOCK_KEY = "migration_lock"

_CREATE_DATABASE = "CREATE DATABASE IF NOT EXISTS {database}"

_CREATE_SETTINGS_TABLE = """
    CREATE TABLE IF NOT EXISTS {database}.system_settings (
        key String,
        value String,
        updated_at DateTime64(3) DEFAULT now64(3)
    ) ENGINE = ReplacingMergeTree(updated_at)
    ORDER BY (key)
"""


@dataclass(frozen=True, slots=True)
class SettingRecord:
    """One row of ``system_settings``."""

    key: str
    value: str
    updated_at: datetime


class SettingsRepository:
    """Read and write rows of the system settings table.

    Example::

        repo = SettingsRepository(client, "staminads_system")
        repo.ensure_schema()
        repo.put("db_major_version", "5")
        repo.get("db_major_version").value  # "5"
    """

    def __init__(self, client: AnalyticsClient, database: str) -> None:
        self.client = client
        self.database = database

    @property
    def table(self) -> str:
        return f"{self.database}.{SETTINGS_TABLE}"

    def ensure_schema(self) -> None:
        """Create the system database and settings table if absent."""
        self.client.command(_CREATE_DATABASE.format(database=self.database))
        self.client.command(_CREATE_SETTINGS_TABLE.format(database=self.database))
        logger.debug("settings.schema_ensured", database=self.database)

    def get(self, key: str) -> SettingRecord | None:
        rows = self.client.query(
            f"SELECT key, value, toUnixTimestamp64Milli(updated_at) AS updated_at_ms "
            f"FROM {self.table} FINAL WHERE key = {{key:String}}",
            parameters={"key": key},
        )
        if not rows:
            return None
        row = rows[0]
        return SettingRecord(
            key=row["key"],
            value=row["value"],
            updated_at=datetime.fromtimestamp(int(row["updated_at_ms"]) / 1000, tz=UTC),
        )

    def put(self, key: str, value: str, updated_at: datetime | None = None) -> None:
        """Upsert ``key``; the newest ``updated_at`` wins on read."""
        self.client.insert(
            self.table,
            [
                {
                    "key": key,
                    "value": value,
                    "updated_at": updated_at or datetime.now(UTC),
                }
            ],
        )

    def delete(self, key: str) -> None:
        self.client.command(
            f"ALTER TABLE {self.table} DELETE WHERE key = {{key:String}}",
            parameters={"key": key},
        )


__all__ = [
    "SETTINGS_TABLE",
    "VERSION_KEY",
    "LOCK_KEY",
    "SettingRecord",
    "SettingsRepository",
]
