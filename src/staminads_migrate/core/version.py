"""Installed schema version bookkeeping."""

from __future__ import annotations

from staminads_migrate import __version__
from staminads_migrate.core.errors import InvalidVersionError
from staminads_migrate.core.logging import get_logger
from staminads_migrate.core.settings_table import VERSION_KEY, SettingsRepository

logger = get_logger(__name__)


def code_major_version(version: str = __version__) -> int:
    """Major component of the application version (``"5.1.0"`` -> ``5``)."""
    return int(version.split(".", 1)[0])


class VersionStore:
    """Single source of truth for the installed schema major version.

    ``read()`` returns ``None`` on a fresh install, where the settings table
    exists but nobody has recorded a version yet.
    """

    def __init__(self, settings: SettingsRepository) -> None:
        self._settings = settings

    def read(self) -> int | None:
        record = self._settings.get(VERSION_KEY)
        if record is None:
            return None
        try:
            return int(record.value.strip())
        except ValueError as e:
            raise InvalidVersionError(record.value, cause=e).with_context(
                database=self._settings.database
            ) from e

    def write(self, version: int) -> None:
        self._settings.put(VERSION_KEY, str(version))
        logger.info("version.recorded", version=version, database=self._settings.database)


__all__ = ["VersionStore", "code_major_version"]
