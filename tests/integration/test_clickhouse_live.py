"""Integration tests against a real ClickHouse server.

Skipped unless ``STAMINADS_TEST_CLICKHOUSE_HOST`` points at a disposable
server (e.g. ``http://localhost:8123``). Each test works in its own
randomly named databases and drops them afterwards.
"""

from __future__ import annotations

import os
import uuid

import pytest

from staminads_migrate.core.adapters import ClickHouseClient
from staminads_migrate.core.settings_table import LOCK_KEY, VERSION_KEY, SettingsRepository
from staminads_migrate.migrations.runner import MigrationRunner
from staminads_migrate.migrations.versions import V3, default_registry

HOST = os.environ.get("STAMINADS_TEST_CLICKHOUSE_HOST")

pytestmark = pytest.mark.skipif(not HOST, reason="STAMINADS_TEST_CLICKHOUSE_HOST not set")

# Workspace tables as they looked at version 2
V2_EVENTS = """
    CREATE TABLE IF NOT EXISTS {database}.events (
        id String,
        session_id String,
        workspace_id String,
        name String,
        path String,
        duration UInt32 DEFAULT 0,
        created_at DateTime64(3),
        updated_at DateTime64(3)
    ) ENGINE = MergeTree()
    ORDER BY (workspace_id, created_at)
"""

V2_SESSIONS = """
    CREATE TABLE IF NOT EXISTS {database}.sessions (
        id String,
        workspace_id String,
        created_at DateTime64(3),
        updated_at DateTime64(3),
        duration UInt32 DEFAULT 0
    ) ENGINE = ReplacingMergeTree(updated_at)
    ORDER BY (workspace_id, id)
"""


def _client():
    return ClickHouseClient(
        HOST,
        username=os.environ.get("STAMINADS_TEST_CLICKHOUSE_USER", "default"),
        password=os.environ.get("STAMINADS_TEST_CLICKHOUSE_PASSWORD", ""),
    )


@pytest.fixture()
def names():
    suffix = uuid.uuid4().hex[:8]
    return {
        "system": f"test_sys_{suffix}",
        "prefix": f"test_ws_{suffix}",
        "workspace": f"test_ws_{suffix}_acme",
    }


@pytest.fixture()
def seeded(names):
    """System database at version 2 with one workspace holding one event."""
    client = _client()
    client.command(f"CREATE DATABASE IF NOT EXISTS {names['system']}")
    client.command(
        f"CREATE TABLE {names['system']}.workspaces (id String) ENGINE = MergeTree() ORDER BY id"
    )
    client.insert(f"{names['system']}.workspaces", [{"id": "acme"}])

    ws = names["workspace"]
    client.command(f"CREATE DATABASE IF NOT EXISTS {ws}")
    client.command(V2_EVENTS.format(database=ws))
    client.command(V2_SESSIONS.format(database=ws))
    client.command(
        f"INSERT INTO {ws}.events (id, session_id, workspace_id, name, path, created_at, updated_at) "
        f"VALUES ('e1', 's1', 'acme', 'screen_view', '/', now64(3), now64(3))"
    )

    repo = SettingsRepository(client, names["system"])
    repo.ensure_schema()
    repo.put(VERSION_KEY, "2")
    yield client

    client.command(f"DROP DATABASE IF EXISTS {ws}")
    client.command(f"DROP DATABASE IF EXISTS {names['system']}")
    client.close()


class TestLiveMigration:
    def test_upgrade_from_v2_keeps_data(self, seeded, names):
        runner = MigrationRunner(
            _client(),
            default_registry(),
            system_database=names["system"],
            workspace_prefix=names["prefix"],
        )

        assert runner.run() is False

        repo = SettingsRepository(seeded, names["system"])
        assert repo.get(VERSION_KEY).value == "5"
        assert repo.get(LOCK_KEY) is None
        rows = seeded.query(f"SELECT id, page_duration, user_id FROM {names['workspace']}.events")
        assert rows == [{"id": "e1", "page_duration": 0, "user_id": None}]

    def test_v3_is_idempotent(self, seeded, names):
        ws = names["workspace"]
        V3.migrate_workspace(seeded, ws)
        before = seeded.query(
            "SELECT name, type FROM system.columns WHERE database = {db:String} "
            "ORDER BY table, name",
            parameters={"db": ws},
        )

        V3.migrate_workspace(seeded, ws)

        after = seeded.query(
            "SELECT name, type FROM system.columns WHERE database = {db:String} "
            "ORDER BY table, name",
            parameters={"db": ws},
        )
        assert before == after
        assert seeded.query(f"SELECT count() AS n FROM {ws}.events") == [{"n": 1}]
