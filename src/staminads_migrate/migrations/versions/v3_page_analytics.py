"""
V3: full page analytics (non-destructive).

Changes per workspace database:
    - events: ``page_duration`` and ``previous_path`` columns
    - sessions: ``pageview_count`` and ``median_page_duration`` columns
    - sessions_mv: recreated with the new aggregations
    - pages: new per-page table
    - pages_mv: new materialized view feeding ``pages``

Existing data is preserved. Columns are added with ``IF NOT EXISTS`` and a
default, so old rows read the default and a re-run is a no-op. The views
hold no data of their own and are dropped and recreated on every run, which
also lets a re-run correct their logic; the new logic applies to new
inserts only.
"""

from __future__ import annotations

from staminads_migrate.core.logging import get_logger
from staminads_migrate.core.protocols import AnalyticsClient
from staminads_migrate.migrations.unit import MigrationUnit

logger = get_logger(__name__)

ADD_COLUMNS = [
    ("events", "page_duration", "UInt32 DEFAULT 0"),
    ("events", "previous_path", "String DEFAULT ''"),
    ("sessions", "pageview_count", "UInt16 DEFAULT 1"),
    ("sessions", "median_page_duration", "UInt32 DEFAULT 0"),
]

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
        )) AS median_page_duration
    FROM {database}.events
    GROUP BY session_id, workspace_id
"""

PAGES_TABLE = """
    CREATE TABLE IF NOT EXISTS {database}.pages (
        session_id String,
        workspace_id String,
        path String,
        previous_path String DEFAULT '',
        page_duration UInt32 DEFAULT 0,
        entered_at DateTime64(3),
        exited_at DateTime64(3),
        created_at DateTime64(3) DEFAULT now64(3)
    ) ENGINE = MergeTree()
    PARTITION BY toYYYYMM(entered_at)
    ORDER BY (workspace_id, session_id, entered_at)
"""

# A screen_view row is written when the visitor leaves the page, so the page
# was entered page_duration seconds before updated_at.
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
        updated_at AS exited_at
    FROM {database}.events
    WHERE name = 'screen_view'
"""


def migrate_workspace(client: AnalyticsClient, database: str) -> None:
    for table, column, definition in ADD_COLUMNS:
        client.command(
            f"ALTER TABLE {database}.{table} ADD COLUMN IF NOT EXISTS {column} {definition}"
        )

    client.command(f"DROP VIEW IF EXISTS {database}.sessions_mv")
    client.command(SESSIONS_MV.format(database=database))

    client.command(PAGES_TABLE.format(database=database))

    client.command(f"DROP VIEW IF EXISTS {database}.pages_mv")
    client.command(PAGES_MV.format(database=database))

    logger.info("v3.workspace_migrated", database=database)


V3 = MigrationUnit(
    major_version=3,
    description="Full page analytics",
    workspace_step=migrate_workspace,
)
