"""
CLI layer for staminads-migrate.

Provides a Typer application whose commands delegate to
``staminads_migrate.startup``. This package handles only terminal
transport: argument parsing, coloured output and exit codes.

Entry point::

    staminads-migrate --help
"""

from staminads_migrate.cli.app import app

__all__ = ["app"]
