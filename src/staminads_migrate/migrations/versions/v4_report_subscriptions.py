"""V4: report subscriptions table in the system database."""

from __future__ import annotations

from staminads_migrate.core.logging import get_logger
from staminads_migrate.core.protocols import AnalyticsClient
from staminads_migrate.migrations.unit import MigrationUnit

logger = get_logger(__name__)

REPORT_SUBSCRIPTIONS = """
    CREATE TABLE IF NOT EXISTS {database}.report_subscriptions (
        id String,
        user_id String,
        workspace_id String,
        name String,
        frequency Enum8('daily' = 1, 'weekly' = 2, 'monthly' = 3),
        day_of_week Nullable(UInt8),
        day_of_month Nullable(UInt8),
        hour UInt8 DEFAULT 8,
        timezone String DEFAULT 'UTC',
        metrics Array(String),
        dimensions Array(String),
        filters String DEFAULT '[]',
        `limit` UInt8 DEFAULT 10,
        status Enum8('active' = 1, 'paused' = 2, 'disabled' = 3) DEFAULT 'active',
        last_sent_at Nullable(DateTime64(3)),
        last_send_status Enum8('pending' = 0, 'success' = 1, 'failed' = 2) DEFAULT 'pending',
        last_error String DEFAULT '',
        next_send_at Nullable(DateTime64(3)),
        consecutive_failures UInt8 DEFAULT 0,
        created_at DateTime64(3) DEFAULT now64(3),
        updated_at DateTime64(3) DEFAULT now64(3)
    ) ENGINE = ReplacingMergeTree(updated_at)
    ORDER BY (user_id, workspace_id, id)
"""


def migrate_system(client: AnalyticsClient, database: str) -> None:
    client.command(REPORT_SUBSCRIPTIONS.format(database=database))
    logger.info("v4.report_subscriptions_created", database=database)


V4 = MigrationUnit(
    major_version=4,
    description="Report subscriptions table",
    system_step=migrate_system,
)
