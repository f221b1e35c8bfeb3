"""
CLI utility helpers: settings loading, error reporting and output formatting.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any, NoReturn

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from staminads_migrate.core.config import MigrateSettings, get_settings
from staminads_migrate.core.errors import ConfigError, StaminadsError
from staminads_migrate.core.logging import configure_logging

console = Console()
err_console = Console(stderr=True)

# EX_TEMPFAIL: another instance holds the lease, try again later
EXIT_DEFERRED = 75


# ── Settings / logging ───────────────────────────────────────────────────


def load_settings() -> MigrateSettings:
    """Load settings and configure logging from them."""
    try:
        settings = get_settings()
    except ValidationError as e:
        fail(ConfigError(f"Invalid configuration: {e}", cause=e))
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    return settings


def fail(error: StaminadsError) -> NoReturn:
    """Print a coordinator error and exit 1."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / dict to plain dict."""
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(payload: Any) -> None:
    console.print_json(json.dumps(payload, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*("-" if v is None else str(v) for v in row.values()))
    console.print(table)


def print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {'-' if v is None else v}")


def output(obj: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a dataclass or dict either as JSON or key-value pairs."""
    data = _to_dict(obj)
    if as_json:
        print_json(data)
    else:
        print_dict(data, title=title)


__all__ = [
    "EXIT_DEFERRED",
    "console",
    "err_console",
    "fail",
    "load_settings",
    "output",
    "print_dict",
    "print_json",
    "print_table",
]
