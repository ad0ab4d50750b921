"""
CLI layer for checkpoint.

A Typer application whose commands wire settings into the orchestrator,
heartbeat and retention components. No business logic lives here, only
argument parsing, exit codes, and table/JSON output.

Entry point::

    checkpoint --help
"""

from checkpoint.cli.app import app

__all__ = ["app"]
