"""
CLI: ``checkpoint daemon``: install and inspect the background services.
"""

from __future__ import annotations

import shutil
import sys

import typer

from checkpoint.cli.utils import EXIT_FAILURE, console, err_console, output, setup
from checkpoint.core.errors import DaemonLifecycleError
from checkpoint.daemon.lifecycle import ServiceSpec, select_lifecycle

app = typer.Typer(no_args_is_help=True)

SWEEP_SERVICE = "checkpoint-sweep"


def _executable() -> list[str]:
    found = shutil.which("checkpoint")
    return [found] if found else [sys.executable, "-m", "checkpoint"]


@app.command("install")
def install(
    sweep_interval: int = typer.Option(3600, "--sweep-interval", help="Seconds between sweeps"),
) -> None:
    """Install the watchdog service and the periodic sweep."""
    settings = setup("daemon")
    lifecycle = select_lifecycle()
    specs = [
        ServiceSpec(
            name=settings.watchdog_service,
            command=[*_executable(), "watchdog", "run"],
            description="checkpoint heartbeat watchdog",
        ),
        ServiceSpec(
            name=SWEEP_SERVICE,
            command=[*_executable(), "sweep"],
            description="checkpoint sweep over all registered projects",
            interval_seconds=sweep_interval,
        ),
    ]
    for spec in specs:
        try:
            lifecycle.install(spec)
        except DaemonLifecycleError as exc:
            err_console.print(f"[bold red]Error[/bold red]: {exc.message}")
            raise typer.Exit(code=EXIT_FAILURE) from exc
        console.print(f"[green]Installed[/green] {spec.name}")


@app.command("uninstall")
def uninstall() -> None:
    """Remove the watchdog and sweep services."""
    settings = setup("daemon")
    lifecycle = select_lifecycle()
    for name in (settings.watchdog_service, SWEEP_SERVICE):
        try:
            lifecycle.uninstall(name)
        except DaemonLifecycleError as exc:
            err_console.print(f"[bold red]Error[/bold red]: {exc.message}")
            raise typer.Exit(code=EXIT_FAILURE) from exc
        console.print(f"[yellow]Removed[/yellow] {name}")


@app.command("list")
def list_services(json_out: bool = typer.Option(False, "--json")) -> None:
    """List supervised services and their state."""
    settings = setup("daemon")
    lifecycle = select_lifecycle()
    names = sorted({n for p in settings.service_prefixes for n in lifecycle.list(p)})
    rows = [{"name": n, "state": lifecycle.status(n).value} for n in names]
    output(rows, as_json=json_out, title="Services")
