"""ClickHouse adapter backed by clickhouse-connect."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import urlparse

import clickhouse_connect
from clickhouse_connect.driver.exceptions import OperationalError

from staminads_migrate.core.errors import ConfigError, DatabaseConnectionError
from staminads_migrate.core.logging import get_logger

logger = get_logger(__name__)

# Lease deletion is an ALTER ... DELETE mutation; wait for it before returning
# so the next instance never observes a lease that was already released.
DEFAULT_SERVER_SETTINGS: dict[str, Any] = {"mutations_sync": 1}


class ClickHouseClient:
    """
    ``AnalyticsClient`` implementation over the clickhouse-connect HTTP client.

    The connection is opened eagerly so an unreachable server fails at
    construction with ``DatabaseConnectionError`` instead of halfway through
    the bootstrap DDL.

    Example::

        client = ClickHouseClient("http://localhost:8123", username="default")
        rows = client.query("SELECT 1 AS one")
        client.close()
    """

    def __init__(
        self,
        url: str = "http://localhost:8123",
        *,
        username: str = "default",
        password: str = "",
        connect_timeout: int = 10,
        settings: Mapping[str, Any] | None = None,
    ):
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ConfigError(f"Invalid ClickHouse URL: {url!r}")

        self._url = url
        server_settings = dict(DEFAULT_SERVER_SETTINGS)
        if settings:
            server_settings.update(settings)

        try:
            self._client = clickhouse_connect.get_client(
                host=parsed.hostname,
                port=parsed.port or (8443 if parsed.scheme == "https" else 8123),
                secure=parsed.scheme == "https",
                username=username,
                password=password,
                connect_timeout=connect_timeout,
                settings=server_settings,
            )
        except OperationalError as e:
            raise DatabaseConnectionError(
                f"Failed to connect to ClickHouse at {url}: {e}",
                cause=e,
            ) from e

        logger.debug("clickhouse.connected", url=url)

    def query(
        self, sql: str, parameters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        result = self._client.query(sql, parameters=parameters)
        return list(result.named_results())

    def command(self, sql: str, parameters: Mapping[str, Any] | None = None) -> None:
        self._client.command(sql, parameters=parameters)

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        if not rows:
            return
        column_names = list(rows[0].keys())
        data = [[row[name] for name in column_names] for row in rows]
        database, _, name = table.rpartition(".")
        self._client.insert(
            name,
            data,
            column_names=column_names,
            database=database or None,
        )

    def close(self) -> None:
        self._client.close()
        logger.debug("clickhouse.closed", url=self._url)


__all__ = ["ClickHouseClient", "DEFAULT_SERVER_SETTINGS"]
