"""Tests for staminads_migrate.core.lease: lease-based migration lock."""

from __future__ import annotations

import os
import socket
from datetime import timedelta

import pytest
from structlog.testing import capture_logs

from staminads_migrate.core.lease import (
    DEFAULT_STALE_AFTER,
    Lease,
    LeaseLock,
    default_holder_id,
)
from staminads_migrate.core.settings_table import LOCK_KEY, SettingsRepository


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture()
def repo(empty_clickhouse):
    return SettingsRepository(empty_clickhouse, "staminads_system")


@pytest.fixture()
def lock(repo, clock):
    return LeaseLock(repo, clock=clock)


# ── Holder identity ──────────────────────────────────────────────────────


class TestHolderId:
    def test_hostname_and_pid(self):
        assert default_holder_id() == f"{socket.gethostname()}-{os.getpid()}"

    def test_default_stale_after(self):
        assert DEFAULT_STALE_AFTER == timedelta(minutes=5)


# ── Acquire ──────────────────────────────────────────────────────────────


class TestTryAcquire:
    def test_acquire_when_free(self, lock, empty_clickhouse, clock):
        outcome = lock.try_acquire("api-1")
        assert outcome.acquired is True
        assert outcome.held_by_other is False
        assert outcome.took_over is False
        assert empty_clickhouse.settings[LOCK_KEY] == ("api-1", clock.now)

    def test_fresh_lease_blocks_without_writing(self, lock, empty_clickhouse, clock):
        empty_clickhouse.set_setting(LOCK_KEY, "api-2", clock.now - timedelta(seconds=30))

        outcome = lock.try_acquire("api-1")

        assert outcome.acquired is False
        assert outcome.held_by_other is True
        assert outcome.holder == "api-2"
        assert outcome.age_seconds == 30
        assert empty_clickhouse.inserts == []
        assert empty_clickhouse.setting(LOCK_KEY) == "api-2"

    def test_single_read(self, lock, empty_clickhouse, clock):
        empty_clickhouse.set_setting(LOCK_KEY, "api-2", clock.now)
        lock.try_acquire("api-1")
        assert empty_clickhouse.settings_reads == [LOCK_KEY]

    def test_stale_lease_is_taken_over(self, lock, empty_clickhouse, clock):
        empty_clickhouse.set_setting(LOCK_KEY, "crashed", clock.now - timedelta(minutes=6))

        with capture_logs() as logs:
            outcome = lock.try_acquire("api-1")

        assert outcome.acquired is True
        assert outcome.took_over is True
        assert empty_clickhouse.settings[LOCK_KEY] == ("api-1", clock.now)
        warning = next(e for e in logs if e["event"] == "lease.stale_takeover")
        assert warning["log_level"] == "warning"
        assert warning["previous_holder"] == "crashed"

    def test_exactly_at_threshold_is_still_fresh(self, lock, empty_clickhouse, clock):
        empty_clickhouse.set_setting(LOCK_KEY, "api-2", clock.now - DEFAULT_STALE_AFTER)
        assert lock.try_acquire("api-1").held_by_other is True

    def test_just_past_threshold_is_stale(self, lock, empty_clickhouse, clock):
        empty_clickhouse.set_setting(
            LOCK_KEY, "api-2", clock.now - DEFAULT_STALE_AFTER - timedelta(milliseconds=1)
        )
        assert lock.try_acquire("api-1").acquired is True

    def test_lease_goes_stale_as_clock_advances(self, lock, repo, clock):
        other = LeaseLock(repo, clock=clock)
        assert other.try_acquire("api-2").acquired is True

        clock.advance(minutes=4)
        assert lock.try_acquire("api-1").held_by_other is True

        clock.advance(minutes=2)
        assert lock.try_acquire("api-1").acquired is True

    def test_custom_stale_after(self, repo, empty_clickhouse, clock):
        lock = LeaseLock(repo, stale_after=timedelta(seconds=10), clock=clock)
        empty_clickhouse.set_setting(LOCK_KEY, "api-2", clock.now - timedelta(seconds=11))
        assert lock.try_acquire("api-1").acquired is True

    def test_own_fresh_lease_also_blocks(self, lock):
        """Holder identity is not compared; a fresh row always blocks."""
        assert lock.try_acquire("api-1").acquired is True
        assert lock.try_acquire("api-1").held_by_other is True


# ── Release / inspect ────────────────────────────────────────────────────


class TestReleaseInspect:
    def test_release_removes_row(self, lock, empty_clickhouse):
        lock.try_acquire("api-1")
        lock.release()
        assert LOCK_KEY not in empty_clickhouse.settings

    def test_release_enables_other_instance(self, lock, repo, clock):
        lock.try_acquire("api-1")
        lock.release()
        assert LeaseLock(repo, clock=clock).try_acquire("api-2").acquired is True

    def test_release_when_free_is_harmless(self, lock, empty_clickhouse):
        lock.release()
        assert LOCK_KEY not in empty_clickhouse.settings

    def test_inspect_free(self, lock):
        assert lock.inspect() is None

    def test_inspect_reports_age(self, lock, clock):
        lock.try_acquire("api-1")
        clock.advance(seconds=90)
        lease = lock.inspect()
        assert lease == Lease(
            holder="api-1",
            acquired_at=clock.now - timedelta(seconds=90),
            age=timedelta(seconds=90),
        )
        assert lease.is_stale(DEFAULT_STALE_AFTER) is False

    def test_inspect_never_writes(self, lock, empty_clickhouse):
        lock.inspect()
        assert empty_clickhouse.inserts == []
        assert empty_clickhouse.commands == []
