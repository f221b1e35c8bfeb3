"""Schema migration coordinator.

Modules
-------
unit       MigrationUnit value type
registry   MigrationRegistry (immutable, ordered by major version)
runner     MigrationRunner.run() state machine
versions   Built-in units and default_registry()
"""

from staminads_migrate.migrations.registry import MigrationRegistry
from staminads_migrate.migrations.runner import MigrationReport, MigrationRunner, MigrationStatus
from staminads_migrate.migrations.unit import MigrationStep, MigrationUnit
from staminads_migrate.migrations.versions import default_registry

__all__ = [
    "MigrationRegistry",
    "MigrationReport",
    "MigrationRunner",
    "MigrationStatus",
    "MigrationStep",
    "MigrationUnit",
    "default_registry",
]
