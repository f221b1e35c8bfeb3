"""Tests for staminads_migrate.core.settings_table: the system key/value table."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from staminads_migrate.core.settings_table import (
    LOCK_KEY,
    VERSION_KEY,
    SettingRecord,
    SettingsRepository,
)


@pytest.fixture()
def repo(empty_clickhouse):
    return SettingsRepository(empty_clickhouse, "staminads_system")


class TestEnsureSchema:
    def test_creates_database_then_table(self, repo, empty_clickhouse):
        repo.ensure_schema()
        create_db, create_table = empty_clickhouse.commands
        assert create_db == "CREATE DATABASE IF NOT EXISTS staminads_system"
        assert create_table.startswith(
            "CREATE TABLE IF NOT EXISTS staminads_system.system_settings"
        )
        assert "ENGINE = ReplacingMergeTree(updated_at)" in create_table

    def test_repeatable(self, repo, empty_clickhouse):
        repo.ensure_schema()
        repo.ensure_schema()
        assert empty_clickhouse.commands[:2] == empty_clickhouse.commands[2:]


class TestReadWrite:
    def test_table_name(self, repo):
        assert repo.table == "staminads_system.system_settings"

    def test_missing_key(self, repo):
        assert repo.get(VERSION_KEY) is None

    def test_put_then_get(self, repo):
        when = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)
        repo.put(VERSION_KEY, "5", updated_at=when)
        assert repo.get(VERSION_KEY) == SettingRecord(key=VERSION_KEY, value="5", updated_at=when)

    def test_get_reads_final_with_bound_key(self, repo, empty_clickhouse):
        repo.get(LOCK_KEY)
        sql = empty_clickhouse.queries[-1]
        assert "FROM staminads_system.system_settings FINAL" in sql
        assert "WHERE key = {key:String}" in sql
        assert empty_clickhouse.settings_reads == [LOCK_KEY]

    def test_put_defaults_timestamp_to_now(self, repo, empty_clickhouse):
        before = datetime.now(UTC)
        repo.put("k", "v")
        _, rows = empty_clickhouse.inserts[-1]
        assert rows[0]["updated_at"] >= before
        assert rows[0]["updated_at"].tzinfo is not None

    def test_updated_at_is_utc(self, repo, empty_clickhouse):
        empty_clickhouse.set_setting("k", "v", datetime(2026, 3, 1, 8, 30, tzinfo=UTC))
        record = repo.get("k")
        assert record.updated_at == datetime(2026, 3, 1, 8, 30, tzinfo=UTC)
        assert record.updated_at.utcoffset().total_seconds() == 0

    def test_delete(self, repo, empty_clickhouse):
        repo.put(LOCK_KEY, "holder")
        repo.delete(LOCK_KEY)
        assert repo.get(LOCK_KEY) is None
        assert empty_clickhouse.commands[-1] == (
            "ALTER TABLE staminads_system.system_settings DELETE WHERE key = {key:String}"
        )

    def test_delete_leaves_other_keys(self, repo):
        repo.put(LOCK_KEY, "holder")
        repo.put(VERSION_KEY, "4")
        repo.delete(LOCK_KEY)
        assert repo.get(VERSION_KEY).value == "4"
