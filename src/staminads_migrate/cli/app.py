"""
Root Typer application for the staminads-migrate CLI.

Each command builds its own client from settings, does one thing, and
closes it. Exit codes: 0 on success, 1 on a coordinator error, 75 when
another instance holds the migration lease.
"""

from __future__ import annotations

import typer

from staminads_migrate import __version__
from staminads_migrate.cli.utils import (
    EXIT_DEFERRED,
    console,
    err_console,
    fail,
    load_settings,
    output,
    print_json,
    print_table,
)
from staminads_migrate.core.errors import MigrationLockTimeoutError, StaminadsError
from staminads_migrate.core.lease import Lease
from staminads_migrate.startup import (
    build_runner,
    get_status,
    list_workspaces,
    release_lease,
    wait_for_migrations,
)

app = typer.Typer(
    name="staminads-migrate",
    help="staminads-migrate: ClickHouse schema migrations for Staminads.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"staminads-migrate {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """staminads-migrate CLI: run, inspect and unlock schema migrations."""


def _lease_dict(lease: Lease | None) -> dict | None:
    if lease is None:
        return None
    return {
        "holder": lease.holder,
        "acquired_at": lease.acquired_at.isoformat(),
        "age_seconds": round(lease.age.total_seconds(), 1),
    }


# ── Commands ─────────────────────────────────────────────────────────────


@app.command()
def run(
    wait: float | None = typer.Option(
        None, "--wait", min=0, help="Keep retrying for up to SECONDS while another instance migrates"
    ),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Bring the schema up to this build's version."""
    settings = load_settings()
    try:
        if wait is None:
            runner = build_runner(settings)
            deferred = runner.run()
        else:
            runner = wait_for_migrations(settings, timeout=wait)
            deferred = False
    except MigrationLockTimeoutError as e:
        err_console.print(f"[yellow]Deferred[/yellow]: {e.message}")
        raise typer.Exit(code=EXIT_DEFERRED) from e
    except StaminadsError as e:
        fail(e)

    report = runner.last_report
    output(report, as_json=json_out, title="Migration Run")
    if deferred:
        if not json_out:
            err_console.print(
                f"[yellow]Deferred[/yellow]: migration lease held by {report.lock_holder}"
            )
        raise typer.Exit(code=EXIT_DEFERRED)


@app.command()
def status(
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Show installed and code versions, pending migrations and the lease."""
    settings = load_settings()
    try:
        st = get_status(settings)
    except StaminadsError as e:
        fail(e)

    data = {
        "installed_version": st.installed_version,
        "code_version": st.code_version,
        "pending_versions": st.pending_versions,
        "missing_versions": st.missing_versions,
        "up_to_date": st.up_to_date,
        "lease": _lease_dict(st.lease),
    }
    if json_out:
        print_json(data)
        return
    data["pending_versions"] = ", ".join(str(v) for v in st.pending_versions) or "none"
    data["missing_versions"] = ", ".join(str(v) for v in st.missing_versions) or "none"
    data["lease"] = st.lease.holder if st.lease else "free"
    output(data, title="Migration Status")


@app.command()
def unlock(
    force: bool = typer.Option(False, "--force", help="Also delete a lease that is not stale"),
) -> None:
    """Delete the migration lease left behind by a crashed instance."""
    settings = load_settings()
    try:
        lease, released = release_lease(settings, force=force)
    except StaminadsError as e:
        fail(e)

    if lease is None:
        console.print("[dim]No migration lease held.[/dim]")
        return
    if not released:
        err_console.print(
            f"[bold red]Refused[/bold red]: lease held by {lease.holder} is "
            f"{lease.age.total_seconds():.0f}s old. Use --force to delete it anyway."
        )
        raise typer.Exit(code=1)
    console.print(f"[green]Released[/green] lease held by {lease.holder}")


@app.command()
def workspaces(
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """List workspace ids and the databases they map to."""
    settings = load_settings()
    try:
        pairs = list_workspaces(settings)
    except StaminadsError as e:
        fail(e)

    rows = [{"workspace_id": wid, "database": db} for wid, db in pairs]
    if json_out:
        print_json(rows)
    else:
        print_table(rows, title="Workspaces")
