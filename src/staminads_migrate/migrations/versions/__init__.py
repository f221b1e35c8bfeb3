"""
Built-in migration units, one module per major version.

Versions 1 and 2 predate the coordinator; an installation recorded below
version 2 cannot be upgraded by this code.
"""

from staminads_migrate.migrations.registry import MigrationRegistry
from staminads_migrate.migrations.versions.v3_page_analytics import V3
from staminads_migrate.migrations.versions.v4_report_subscriptions import V4
from staminads_migrate.migrations.versions.v5_user_id import V5

BUILTIN_UNITS = (V3, V4, V5)


def default_registry() -> MigrationRegistry:
    """Registry of every unit shipped with this build."""
    return MigrationRegistry(BUILTIN_UNITS)


__all__ = ["BUILTIN_UNITS", "V3", "V4", "V5", "default_registry"]
