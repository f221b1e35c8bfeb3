"""Migration unit: one major schema version's worth of changes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from staminads_migrate.core.protocols import AnalyticsClient

# (client, database_name) -> None
MigrationStep = Callable[[AnalyticsClient, str], None]


@dataclass(frozen=True, slots=True)
class MigrationUnit:
    """Upgrade from ``major_version - 1`` to ``major_version``.

    A unit has a system phase, a workspace phase, or both; which ones is
    decided by the callables it is built with rather than by subclassing.
    ``migrate_system`` receives the system database name once;
    ``migrate_workspace`` receives each workspace database name in turn.

    Both steps must be idempotent: a crashed run is resumed by re-applying
    the whole version.
    """

    major_version: int
    description: str = ""
    system_step: MigrationStep | None = None
    workspace_step: MigrationStep | None = None

    def __post_init__(self) -> None:
        if self.major_version < 1:
            raise ValueError(f"major_version must be >= 1, got {self.major_version}")

    def has_system_migration(self) -> bool:
        return self.system_step is not None

    def has_workspace_migration(self) -> bool:
        return self.workspace_step is not None

    def migrate_system(self, client: AnalyticsClient, system_database: str) -> None:
        if self.system_step is not None:
            self.system_step(client, system_database)

    def migrate_workspace(self, client: AnalyticsClient, workspace_database: str) -> None:
        if self.workspace_step is not None:
            self.workspace_step(client, workspace_database)


__all__ = ["MigrationStep", "MigrationUnit"]
