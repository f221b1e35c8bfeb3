"""Database adapters implementing :class:`~staminads_migrate.core.protocols.AnalyticsClient`."""

from staminads_migrate.core.adapters.clickhouse import ClickHouseClient

__all__ = ["ClickHouseClient"]
