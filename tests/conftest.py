"""
Shared pytest fixtures and configuration for staminads-migrate tests.

This module provides:
- An in-memory ClickHouse client (``fake_clickhouse``)
- A controllable clock for lease ageing
- Settings-cache and structlog isolation between tests

Usage:
    Fixtures are auto-discovered by pytest::

        def test_something(fake_clickhouse, clock):
            ...
"""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import structlog

# Ensure the package is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from _support.fake_clickhouse import FakeClickHouse  # noqa: E402

from staminads_migrate.core.config import clear_settings_cache  # noqa: E402
from staminads_migrate.core.logging import clear_context  # noqa: E402


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings(monkeypatch):
    """Fresh settings per test, unaffected by the developer's environment."""
    for name in (
        "CLICKHOUSE_HOST",
        "CLICKHOUSE_USER",
        "CLICKHOUSE_PASSWORD",
        "CLICKHOUSE_SYSTEM_DATABASE",
    ):
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(f"STAMINADS_{name}", raising=False)
    monkeypatch.chdir(Path(__file__).parent)
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def _quiet_structlog():
    """Route log events nowhere; ``capture_logs`` still works on top."""
    structlog.configure(
        processors=[],
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    clear_context()
    structlog.reset_defaults()


# =============================================================================
# ClickHouse / Clock Fixtures
# =============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC))


@pytest.fixture()
def fake_clickhouse() -> FakeClickHouse:
    """Fake with two workspaces, one of which needs name sanitizing."""
    return FakeClickHouse(workspaces=["acme", "ws-with-dashes"])


@pytest.fixture()
def empty_clickhouse() -> FakeClickHouse:
    return FakeClickHouse()
