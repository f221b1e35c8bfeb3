"""
V5: authenticated user identity on workspace tables.

Adds a nullable ``user_id`` column with a bloom-filter index to events,
sessions, pages and goals so analytics can be filtered and exported per
user. Materialized views do not pick up new columns on their own, so all
three are recreated to carry ``user_id`` through.

Workspaces created before goal tracking have neither the goal columns on
``events`` nor the ``goals`` table; both are created here if absent.
"""

from __future__ import annotations

from staminads_migrate.core.logging import get_logger
from staminads_migrate.core.protocols import AnalyticsClient
from staminads_migrate.migrations.unit import MigrationUnit

logger = get_logger(__name__)

USER_ID_TABLES = ("events", "sessions", "pages", "goals")

GOAL_EVENT_COLUMNS = [
    ("goal_name", "String DEFAULT ''"),
    ("goal_value", "Float32 DEFAULT 0"),
]

GOALS_TABLE = """
    CREATE TABLE IF NOT EXISTS {database}.goals (
        id UUID DEFAULT generateUUIDv4(),
        session_id String,
        workspace_id String,
        goal_name String,
        goal_value Float32 DEFAULT 0,
        goal_timestamp DateTime64(3),
        path String,
        created_at DateTime64(3) DEFAULT now64(3)
    ) ENGINE = MergeTree()
    PARTITION BY toYYYYMM(goal_timestamp)
    ORDER BY (workspace_id, goal_timestamp, session_id)
"""

SESSIONS_MV = """
    CREATE MATERIALIZED VIEW IF NOT EXISTS {database}.sessions_mv
    TO {database}.sessions AS
    SELECT
        session_id AS id,
        workspace_id,
        min(created_at) AS created_at,
        max(updated_at) AS updated_at,
        max(duration) AS duration,
        toUInt16(countIf(name = 'screen_view')) AS pageview_count,
        toUInt32(if(
            isNaN(medianIf(page_duration, page_duration > 0)),
            0,
            round(medianIf(page_duration, page_duration > 0))
        )) AS median_page_duration,
        anyLast(user_id) AS user_id
    FROM {database}.events
    GROUP BY session_id, workspace_id
"""

PAGES_MV = """
    CREATE MATERIALIZED VIEW IF NOT EXISTS {database}.pages_mv
    TO {database}.pages AS
    SELECT
        session_id,
        workspace_id,
        path,
        previous_path,
        page_duration,
        subtractSeconds(updated_at, page_duration) AS entered_at,
        updated_at AS exited_at,
        user_id
    FROM {database}.events
    WHERE name = 'screen_view'
"""

GOALS_MV = """
    CREATE MATERIALIZED VIEW IF NOT EXISTS {database}.goals_mv
    TO {database}.goals AS
    SELECT
        generateUUIDv4() AS id,
        session_id,
        workspace_id,
        goal_name,
        goal_value,
        updated_at AS goal_timestamp,
        path,
        user_id
    FROM {database}.events
    WHERE name = 'goal'
"""


def migrate_workspace(client: AnalyticsClient, database: str) -> None:
    for column, definition in GOAL_EVENT_COLUMNS:
        client.command(
            f"ALTER TABLE {database}.events ADD COLUMN IF NOT EXISTS {column} {definition}"
        )
    client.command(GOALS_TABLE.format(database=database))

    for table in USER_ID_TABLES:
        client.command(
            f"ALTER TABLE {database}.{table} ADD COLUMN IF NOT EXISTS user_id Nullable(String)"
        )
        client.command(
            f"ALTER TABLE {database}.{table} ADD INDEX IF NOT EXISTS idx_user_id "
            f"user_id TYPE bloom_filter GRANULARITY 1"
        )

    client.command(f"DROP VIEW IF EXISTS {database}.sessions_mv")
    client.command(SESSIONS_MV.format(database=database))
    client.command(f"DROP VIEW IF EXISTS {database}.pages_mv")
    client.command(PAGES_MV.format(database=database))
    client.command(f"DROP VIEW IF EXISTS {database}.goals_mv")
    client.command(GOALS_MV.format(database=database))

    logger.info("v5.workspace_migrated", database=database)


V5 = MigrationUnit(
    major_version=5,
    description="User id on workspace tables",
    workspace_step=migrate_workspace,
)
