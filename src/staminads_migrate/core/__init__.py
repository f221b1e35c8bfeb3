"""
Core primitives for the migration coordinator.

Modules
-------
protocols       AnalyticsClient contract (query / command / insert / close)
adapters        ClickHouse implementation of the contract
settings_table  system_settings rows (SettingRecord, SettingsRepository)
version         VersionStore and the code's major version
lease           LeaseLock over the migration_lock row
workspaces      WorkspaceEnumerator and database naming
errors          StaminadsError hierarchy
logging         structlog configuration
config          MigrateSettings (pydantic-settings)
"""

from staminads_migrate.core.errors import (
    DowngradeNotSupportedError,
    MigrationError,
    MigrationNotFoundError,
    StaminadsError,
)
from staminads_migrate.core.lease import Lease, LeaseAcquisition, LeaseLock, default_holder_id
from staminads_migrate.core.protocols import AnalyticsClient
from staminads_migrate.core.settings_table import SettingRecord, SettingsRepository
from staminads_migrate.core.version import VersionStore, code_major_version
from staminads_migrate.core.workspaces import WorkspaceEnumerator, workspace_database_name

__all__ = [
    "AnalyticsClient",
    "DowngradeNotSupportedError",
    "Lease",
    "LeaseAcquisition",
    "LeaseLock",
    "MigrationError",
    "MigrationNotFoundError",
    "SettingRecord",
    "SettingsRepository",
    "StaminadsError",
    "VersionStore",
    "WorkspaceEnumerator",
    "code_major_version",
    "default_holder_id",
    "workspace_database_name",
]
