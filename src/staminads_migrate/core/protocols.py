"""
Protocol definitions for the analytics database client.

The coordinator never talks to a driver directly. Everything it needs from
the columnar store fits in four calls, so any object with this shape works:
the ClickHouse adapter in production, an in-memory fake in tests.

Architecture:
    ::

        AnalyticsClient Protocol:
        ┌────────────────────────────────────────────────────────────┐
        │ query(sql, parameters)   → list of row dicts               │
        │ command(sql, parameters) → DDL/DML without a result set    │
        │ insert(table, rows)      → append row dicts to a table     │
        │ close()                  → release the connection          │
        └────────────────────────────────────────────────────────────┘

        Implementations:
        ┌────────────────────────────────────────────────────────────┐
        │ ClickHouseClient  → clickhouse-connect HTTP client         │
        │ tests FakeClickHouse → in-memory settings + workspaces     │
        └────────────────────────────────────────────────────────────┘

Parameters use ClickHouse server-side binding (``{key:String}``) so values
never get interpolated into SQL text. Identifiers (database names) cannot
be bound and are validated by the settings layer instead.

Tags:
    protocol, database, clickhouse, contracts
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class AnalyticsClient(Protocol):
    """Minimal synchronous client interface for the analytics database."""

    def query(
        self, sql: str, parameters: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Run a SELECT and return every row as a column-name keyed dict."""
        ...

    def command(self, sql: str, parameters: Mapping[str, Any] | None = None) -> None:
        """Run a statement that returns no result set (DDL, mutations)."""
        ...

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        """Insert rows into a fully qualified ``database.table``."""
        ...

    def close(self) -> None:
        """Release the underlying connection."""
        ...


__all__ = ["AnalyticsClient"]
