"""
CLI: ``checkpoint watchdog``: supervise the backup daemons.
"""

from __future__ import annotations

import threading

import typer

from checkpoint.cli.utils import build_runtime, console, output, setup
from checkpoint.core.fileio import read_json
from checkpoint.core.signals import stop_on_signals

app = typer.Typer(no_args_is_help=True)


@app.command("run")
def run_watchdog() -> None:
    """Run the watchdog loop until SIGTERM/SIGINT."""
    settings = setup("watchdog")
    monitor = build_runtime(settings).watchdog()
    console.print(
        f"[bold green]Starting checkpoint watchdog[/bold green] "
        f"(interval={settings.check_interval}s, stale={settings.stale_threshold}s, "
        f"max_failures={settings.max_failures})"
    )
    with stop_on_signals(threading.Event()) as stop_event:
        monitor.run(stop_event)


@app.command("check")
def check(json_out: bool = typer.Option(False, "--json")) -> None:
    """Run a single watchdog cycle and print its result."""
    monitor = build_runtime(setup("watchdog")).watchdog()
    result = monitor.check_once()
    output(result, as_json=json_out, title="Watchdog check")


@app.command("status")
def status(json_out: bool = typer.Option(False, "--json")) -> None:
    """Show the last status the watchdog wrote."""
    settings = setup("watchdog")
    data = read_json(settings.watchdog_status_file)
    if not isinstance(data, dict):
        console.print("[dim]Watchdog has not run yet.[/dim]")
        raise typer.Exit(code=0)
    output(data, as_json=json_out, title="Watchdog")
