"""
Migration runner: brings the installed schema up to the code's version.

Manifesto:
    Every API replica calls ``run()`` before it starts serving. Exactly one of
    them takes the lease and applies whatever is pending, one major version at
    a time; the others are told to defer. A version is recorded only after its
    system phase and every workspace have been migrated, so a crash at any
    point resumes from the last fully applied version.

State machine:
    ::

        Idle ─► Bootstrap ─► LockCheck ─┬─► LockedByOther ──────────► return True
                                        │
                                        └─► Acquired ─► VersionCheck ◄──────┐
                                                          │                 │
                          absent ─► record code version ──┤                 │
                          equal ──────────────────────────┤                 │
                          installed > code ─► DowngradeNotSupportedError    │
                          installed < code ─► ApplyNext(installed + 1) ─────┘
                                                          │
                                           ReleaseLock ◄──┘ (every exit path)
                                                │
                                           Close client ─► return False

Guardrails:
    - No fast-forward: version N runs only after N-1 is recorded.
    - A fresh install (no recorded version) records the code version
      directly; there is no pre-existing data to migrate.
    - Migration failures propagate unchanged, never retried here.

Tags:
    migrations, schema, clickhouse, multi-tenant, lease, state-machine
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import uuid4

from staminads_migrate.core.errors import DowngradeNotSupportedError, MigrationNotFoundError
from staminads_migrate.core.lease import (
    DEFAULT_STALE_AFTER,
    Lease,
    LeaseLock,
    default_holder_id,
    utcnow,
)
from staminads_migrate.core.logging import LogContext, get_logger
from staminads_migrate.core.protocols import AnalyticsClient
from staminads_migrate.core.settings_table import SettingsRepository
from staminads_migrate.core.version import VersionStore, code_major_version
from staminads_migrate.core.workspaces import DEFAULT_WORKSPACE_PREFIX, WorkspaceEnumerator
from staminads_migrate.migrations.registry import MigrationRegistry
from staminads_migrate.migrations.unit import MigrationUnit

logger = get_logger(__name__)


@dataclass
class MigrationReport:
    """What a single ``run()`` did."""

    code_version: int
    installed_before: int | None = None
    installed_after: int | None = None
    applied: list[int] = field(default_factory=list)
    workspaces_migrated: int = 0
    fresh_install: bool = False
    deferred: bool = False
    lock_holder: str | None = None

    @property
    def up_to_date(self) -> bool:
        return not self.deferred and self.installed_after == self.code_version


@dataclass(frozen=True)
class MigrationStatus:
    """Read-only view of where the schema stands."""

    installed_version: int | None
    code_version: int
    pending_versions: list[int]
    lease: Lease | None
    missing_versions: list[int] = field(default_factory=list)

    @property
    def up_to_date(self) -> bool:
        return self.installed_version == self.code_version


class MigrationRunner:
    """Applies pending major-version migrations under a lease.

    Parameters
    ----------
    client
        Analytics database client. The runner owns it: ``run()`` closes it.
    registry
        Migration units available to this build.
    system_database
        Name of the shared system database.
    code_version
        Highest major version this build knows. Defaults to the package
        version's major component.

    Example::

        runner = MigrationRunner(ClickHouseClient(url), default_registry())
        if runner.run():
            # another instance is migrating; do not serve traffic yet
            sys.exit(75)
    """

    def __init__(
        self,
        client: AnalyticsClient,
        registry: MigrationRegistry,
        *,
        system_database: str = "staminads_system",
        workspace_prefix: str = DEFAULT_WORKSPACE_PREFIX,
        code_version: int | None = None,
        holder_id: str | None = None,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.client = client
        self.registry = registry
        self.system_database = system_database
        self.code_version = code_version if code_version is not None else code_major_version()
        self.holder_id = holder_id or default_holder_id()

        self.settings = SettingsRepository(client, system_database)
        self.versions = VersionStore(self.settings)
        self.lease = LeaseLock(self.settings, stale_after=stale_after, clock=clock)
        self.workspaces = WorkspaceEnumerator(client, system_database, prefix=workspace_prefix)

        self.last_report: MigrationReport | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> bool:
        """Check and migrate the schema.

        Returns ``True`` when another instance holds the lease and this one
        should defer, ``False`` once the schema matches the code version.
        Raises ``DowngradeNotSupportedError``, ``MigrationNotFoundError``, or
        whatever a migration step raised; the lease is released and the
        client closed first in every case.
        """
        report = MigrationReport(code_version=self.code_version)
        self.last_report = report

        with LogContext(run_id=uuid4().hex[:12], holder=self.holder_id):
            try:
                logger.info(
                    "migration.check_started",
                    code_version=self.code_version,
                    system_database=self.system_database,
                )
                self.settings.ensure_schema()

                acquisition = self.lease.try_acquire(self.holder_id)
                if acquisition.held_by_other:
                    report.deferred = True
                    report.lock_holder = acquisition.holder
                    logger.info("migration.deferred", lock_holder=acquisition.holder)
                    return True

                try:
                    self._migrate_to_current(report)
                except BaseException:
                    self._release_after_failure()
                    raise
                self.lease.release()
                return False
            finally:
                self.client.close()

    def describe(self) -> MigrationStatus:
        """Installed/code versions, pending units and the current lease.

        Versions between installed and code with no registered unit are
        listed in ``missing_versions``; ``run()`` would stop at the first of
        them. Takes no lease and writes nothing; the client stays open.
        """
        installed = self.versions.read()
        pending: list[int] = []
        missing: list[int] = []
        if installed is not None and installed < self.code_version:
            pending = [
                unit.major_version
                for unit in self.registry.pending(installed, self.code_version)
            ]
            missing = [
                version
                for version in range(installed + 1, self.code_version + 1)
                if version not in self.registry
            ]
        return MigrationStatus(
            installed_version=installed,
            code_version=self.code_version,
            pending_versions=pending,
            lease=self.lease.inspect(),
            missing_versions=missing,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _release_after_failure(self) -> None:
        try:
            self.lease.release()
        except Exception as exc:
            # Keep the migration error; the lease goes stale on its own.
            logger.error("lease.release_failed", error=str(exc))

    def _migrate_to_current(self, report: MigrationReport) -> None:
        while True:
            installed = self.versions.read()
            if report.installed_before is None and not report.applied:
                report.installed_before = installed
            logger.info(
                "migration.version_checked",
                db_version=installed,
                code_version=self.code_version,
            )

            if installed is None:
                logger.info("migration.fresh_install", version=self.code_version)
                self.versions.write(self.code_version)
                report.fresh_install = True
                report.installed_after = self.code_version
                return

            if installed > self.code_version:
                raise DowngradeNotSupportedError(installed, self.code_version)

            if installed == self.code_version:
                logger.info("migration.up_to_date", version=installed)
                report.installed_after = installed
                return

            next_version = installed + 1
            unit = self.registry.get(next_version)
            if unit is None:
                raise MigrationNotFoundError(
                    next_version,
                    installed_version=installed,
                    code_version=self.code_version,
                )

            report.workspaces_migrated += self._apply(unit)
            self.versions.write(next_version)
            report.applied.append(next_version)
            report.installed_after = next_version

    def _apply(self, unit: MigrationUnit) -> int:
        """Run one unit's phases. Returns the number of workspaces migrated."""
        version = unit.major_version
        started = time.monotonic()
        logger.info("migration.started", version=version, description=unit.description)

        if unit.has_system_migration():
            logger.info("migration.system_phase", version=version, database=self.system_database)
            try:
                unit.migrate_system(self.client, self.system_database)
            except Exception as exc:
                logger.error(
                    "migration.system_failed",
                    version=version,
                    database=self.system_database,
                    error=str(exc),
                )
                raise

        migrated = 0
        if unit.has_workspace_migration():
            workspace_ids = self.workspaces.list_workspace_ids()
            total = len(workspace_ids)
            logger.info("migration.workspace_phase", version=version, workspaces=total)

            for index, workspace_id in enumerate(workspace_ids, start=1):
                database = self.workspaces.to_database_name(workspace_id)
                logger.info(
                    "workspace.migrating",
                    version=version,
                    workspace_id=workspace_id,
                    database=database,
                    position=f"{index}/{total}",
                )
                try:
                    unit.migrate_workspace(self.client, database)
                except Exception as exc:
                    # Abort on first failure; the version stays unrecorded.
                    logger.error(
                        "migration.workspace_failed",
                        version=version,
                        workspace_id=workspace_id,
                        database=database,
                        error=str(exc),
                    )
                    raise
                migrated += 1

        logger.info(
            "migration.applied",
            version=version,
            workspaces=migrated,
            duration_ms=round((time.monotonic() - started) * 1000),
        )
        return migrated


__all__ = ["MigrationReport", "MigrationRunner", "MigrationStatus"]
