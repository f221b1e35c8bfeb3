"""
Application-startup entry points.

The API process calls :func:`run_migrations` before it binds its port. A
``True`` result means another replica holds the migration lease; the
container is expected to exit and be restarted, or the caller can use
:func:`wait_for_migrations` to poll until the other replica is done.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from staminads_migrate.core.adapters import ClickHouseClient
from staminads_migrate.core.config import MigrateSettings, get_settings
from staminads_migrate.core.errors import MigrationLockTimeoutError
from staminads_migrate.core.lease import Lease
from staminads_migrate.core.logging import get_logger
from staminads_migrate.core.protocols import AnalyticsClient
from staminads_migrate.migrations.registry import MigrationRegistry
from staminads_migrate.migrations.runner import MigrationRunner, MigrationStatus
from staminads_migrate.migrations.versions import default_registry

logger = get_logger(__name__)

ClientFactory = Callable[[MigrateSettings], AnalyticsClient]


def connect(settings: MigrateSettings) -> AnalyticsClient:
    """Open a ClickHouse client from settings."""
    return ClickHouseClient(
        settings.clickhouse_host,
        username=settings.clickhouse_user,
        password=settings.clickhouse_password.get_secret_value(),
        connect_timeout=settings.clickhouse_connect_timeout,
    )


def build_runner(
    settings: MigrateSettings | None = None,
    *,
    client_factory: ClientFactory | None = None,
    registry: MigrationRegistry | None = None,
    holder_id: str | None = None,
) -> MigrationRunner:
    """Wire a runner with a fresh client. The runner owns the client."""
    settings = settings or get_settings()
    factory = client_factory or connect
    return MigrationRunner(
        factory(settings),
        registry if registry is not None else default_registry(),
        system_database=settings.system_database,
        workspace_prefix=settings.workspace_prefix,
        holder_id=holder_id,
        stale_after=settings.lock_stale_after,
    )


def run_migrations(
    settings: MigrateSettings | None = None,
    *,
    client_factory: ClientFactory | None = None,
    registry: MigrationRegistry | None = None,
) -> bool:
    """Run the coordinator once. ``True`` means defer to the lease holder."""
    return build_runner(settings, client_factory=client_factory, registry=registry).run()


def wait_for_migrations(
    settings: MigrateSettings | None = None,
    *,
    timeout: float,
    poll_interval: float | None = None,
    client_factory: ClientFactory | None = None,
    registry: MigrationRegistry | None = None,
    sleep: Callable[[float], None] = time.sleep,
    monotonic: Callable[[], float] = time.monotonic,
) -> MigrationRunner:
    """Retry :func:`run_migrations` until this instance no longer defers.

    Each attempt uses a fresh client. Returns the runner of the last
    attempt so callers can inspect ``last_report``. Raises
    ``MigrationLockTimeoutError`` once ``timeout`` seconds have passed with
    the lease still held elsewhere.
    """
    settings = settings or get_settings()
    interval = poll_interval if poll_interval is not None else settings.wait_poll_seconds
    deadline = monotonic() + timeout
    attempt = 0

    while True:
        attempt += 1
        runner = build_runner(settings, client_factory=client_factory, registry=registry)
        if not runner.run():
            return runner

        holder = runner.last_report.lock_holder if runner.last_report else None
        if monotonic() + interval > deadline:
            raise MigrationLockTimeoutError(timeout, holder=holder)

        logger.info("migration.waiting", attempt=attempt, lock_holder=holder, retry_in=interval)
        sleep(interval)


def get_status(
    settings: MigrateSettings | None = None,
    *,
    client_factory: ClientFactory | None = None,
    registry: MigrationRegistry | None = None,
) -> MigrationStatus:
    runner = build_runner(settings, client_factory=client_factory, registry=registry)
    try:
        runner.settings.ensure_schema()
        return runner.describe()
    finally:
        runner.client.close()


def list_workspaces(
    settings: MigrateSettings | None = None,
    *,
    client_factory: ClientFactory | None = None,
) -> list[tuple[str, str]]:
    """``(workspace_id, database_name)`` for every known workspace."""
    runner = build_runner(settings, client_factory=client_factory)
    try:
        enumerator = runner.workspaces
        return [(wid, enumerator.to_database_name(wid)) for wid in enumerator]
    finally:
        runner.client.close()


def release_lease(
    settings: MigrateSettings | None = None,
    *,
    force: bool = False,
    client_factory: ClientFactory | None = None,
) -> tuple[Lease | None, bool]:
    """Delete the migration lease.

    Returns the lease found and whether it was deleted. A fresh lease
    belongs to a live migration and is only deleted with ``force=True``.
    """
    runner = build_runner(settings, client_factory=client_factory)
    try:
        runner.settings.ensure_schema()
        lease = runner.lease.inspect()
        if lease is None:
            return None, False
        if not force and not lease.is_stale(runner.lease.stale_after):
            logger.warning("lease.release_refused", holder=lease.holder)
            return lease, False
        runner.lease.release()
        return lease, True
    finally:
        runner.client.close()


__all__ = [
    "ClientFactory",
    "build_runner",
    "connect",
    "get_status",
    "list_workspaces",
    "release_lease",
    "run_migrations",
    "wait_for_migrations",
]
