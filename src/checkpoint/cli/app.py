"""
Root Typer application for the checkpoint CLI.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from checkpoint import __version__

app = Typer(
    name="checkpoint",
    help="checkpoint: debounced, locked, self-healing project backups.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("checkpoint-core")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"checkpoint {v}")
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
    """checkpoint CLI: run, watch and sweep backups; inspect locks, heartbeats and retention."""


# ── Sub-command registration ─────────────────────────────────────────────

from checkpoint.cli.daemon import app as daemon_app  # noqa: E402
from checkpoint.cli.projects import app as projects_app  # noqa: E402
from checkpoint.cli.retention import app as retention_app  # noqa: E402
from checkpoint.cli.run import run_command, watch_command  # noqa: E402
from checkpoint.cli.status import app as locks_app  # noqa: E402
from checkpoint.cli.status import status_command  # noqa: E402
from checkpoint.cli.sweep import sweep_command  # noqa: E402
from checkpoint.cli.watchdog import app as watchdog_app  # noqa: E402

app.command("run")(run_command)
app.command("watch")(watch_command)
app.command("sweep")(sweep_command)
app.command("status")(status_command)

app.add_typer(projects_app, name="projects", help="Project registry management.")
app.add_typer(retention_app, name="retention", help="Snapshot retention stats, prune and history.")
app.add_typer(watchdog_app, name="watchdog", help="Heartbeat watchdog.")
app.add_typer(locks_app, name="locks", help="Run lock inspection and cleanup.")
app.add_typer(daemon_app, name="daemon", help="Install and inspect background services.")
