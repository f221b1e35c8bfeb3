"""
Lease-based mutual exclusion for schema migrations.

Manifesto:
    Several API replicas start at once during a rolling deploy and every one
    of them runs the migration check. Only one may actually alter the schema.
    There is no lock service in the stack, and ClickHouse has no row locks or
    compare-and-swap, so the claim is recorded as ordinary data: one
    ``migration_lock`` row in ``system_settings`` holding the holder identity
    and a timestamp.

Protocol:
    ::

        try_acquire(holder)
          │
          ├─ no row ─────────────────────► insert {holder, now}  → acquired
          ├─ row older than stale_after ─► overwrite {holder, now} → acquired
          └─ fresh row ──────────────────► no write              → held by other

        release()  → delete the row, whoever holds it

    A holder that crashes leaves its row behind; after ``stale_after`` the
    next instance takes it over and resumes from the last recorded version.

Guardrails:
    This is a lease, not a linearizable lock. Two instances that read the
    same stale row in the same instant both insert and both believe they
    acquired it. The window is the gap between one read and one insert and
    is accepted; migrations are idempotent so a double run of the same
    version does no harm.

Tags:
    lease, distributed-locks, TTL, concurrency, clickhouse
"""

from __future__ import annotations

import os
import socket
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from staminads_migrate.core.logging import get_logger
from staminads_migrate.core.settings_table import LOCK_KEY, SettingsRepository

logger = get_logger(__name__)

DEFAULT_STALE_AFTER = timedelta(minutes=5)


def default_holder_id() -> str:
    """Identity recorded in the lease row: ``<hostname>-<pid>``."""
    return f"{socket.gethostname()}-{os.getpid()}"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class Lease:
    """The ``migration_lock`` row seen as a lease."""

    holder: str
    acquired_at: datetime
    age: timedelta

    def is_stale(self, stale_after: timedelta) -> bool:
        return self.age > stale_after


@dataclass(frozen=True, slots=True)
class LeaseAcquisition:
    """Outcome of :meth:`LeaseLock.try_acquire`."""

    acquired: bool
    held_by_other: bool
    holder: str | None = None
    age_seconds: float | None = None
    took_over: bool = False


class LeaseLock:
    """Named lease stored as a row of the settings table.

    Example:
        >>> lock = LeaseLock(settings_repo)
        >>> outcome = lock.try_acquire(default_holder_id())
        >>> if outcome.acquired:
        ...     try:
        ...         migrate()
        ...     finally:
        ...         lock.release()
    """

    def __init__(
        self,
        settings: SettingsRepository,
        *,
        key: str = LOCK_KEY,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self.key = key
        self.stale_after = stale_after
        self._clock = clock

    def inspect(self) -> Lease | None:
        """Current lease, if any. Never writes."""
        record = self._settings.get(self.key)
        if record is None:
            return None
        return Lease(
            holder=record.value,
            acquired_at=record.updated_at,
            age=self._clock() - record.updated_at,
        )

    def try_acquire(self, holder_id: str) -> LeaseAcquisition:
        """Claim the lease for ``holder_id`` unless a fresh one exists."""
        current = self.inspect()

        if current is not None and not current.is_stale(self.stale_after):
            logger.info(
                "lease.held_by_other",
                key=self.key,
                holder=current.holder,
                age_seconds=round(current.age.total_seconds()),
            )
            return LeaseAcquisition(
                acquired=False,
                held_by_other=True,
                holder=current.holder,
                age_seconds=current.age.total_seconds(),
            )

        if current is not None:
            logger.warning(
                "lease.stale_takeover",
                key=self.key,
                previous_holder=current.holder,
                age_seconds=round(current.age.total_seconds()),
                holder=holder_id,
            )

        self._settings.put(self.key, holder_id, updated_at=self._clock())
        logger.info("lease.acquired", key=self.key, holder=holder_id)
        return LeaseAcquisition(
            acquired=True,
            held_by_other=False,
            holder=holder_id,
            age_seconds=0.0,
            took_over=current is not None,
        )

    def release(self) -> None:
        """Delete the lease row unconditionally."""
        self._settings.delete(self.key)
        logger.info("lease.released", key=self.key)


__all__ = [
    "DEFAULT_STALE_AFTER",
    "Lease",
    "LeaseAcquisition",
    "LeaseLock",
    "default_holder_id",
    "utcnow",
]
