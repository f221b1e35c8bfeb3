"""Configuration for the migration coordinator."""

from staminads_migrate.core.config.settings import (
    MigrateSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = ["MigrateSettings", "clear_settings_cache", "get_settings"]
