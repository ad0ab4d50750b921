"""
CLI: ``checkpoint status`` and ``checkpoint locks``.
"""

from __future__ import annotations

import time
from typing import Any

import typer

from checkpoint.cli.utils import build_runtime, console, output, setup
from checkpoint.core.fileio import read_json
from checkpoint.heartbeat.publisher import read_heartbeat

app = typer.Typer(no_args_is_help=True)


def status_command(json_out: bool = typer.Option(False, "--json")) -> None:
    """Show the backup heartbeat, the watchdog status and held locks."""
    settings = setup("status")
    runtime = build_runtime(settings)
    record = read_heartbeat(settings.heartbeat_file)
    heartbeat: dict[str, Any] | None = None
    if record is not None:
        heartbeat = record.to_dict()
        heartbeat["age_seconds"] = max(0, int(time.time()) - record.timestamp)
        heartbeat["stale"] = heartbeat["age_seconds"] >= settings.stale_threshold
    watchdog = read_json(settings.watchdog_status_file)
    locks = runtime.locks.list_locks()

    if json_out:
        output(
            {
                "heartbeat": heartbeat,
                "watchdog": watchdog if isinstance(watchdog, dict) else None,
                "locks": locks,
            },
            as_json=True,
        )
        return

    if heartbeat is None:
        console.print("[dim]No heartbeat yet.[/dim]")
    else:
        output(heartbeat, title="Heartbeat")
    if isinstance(watchdog, dict):
        output(watchdog, title="Watchdog")
    if locks:
        output(locks, title="Locks")


@app.command("list")
def list_locks(json_out: bool = typer.Option(False, "--json")) -> None:
    """List lock files with owner PID and liveness."""
    runtime = build_runtime(setup("locks"))
    output(runtime.locks.list_locks(), as_json=json_out, title="Locks")


@app.command("cleanup")
def cleanup() -> None:
    """Remove locks whose owner is dead, reused or abandoned."""
    runtime = build_runtime(setup("locks"))
    removed = runtime.locks.cleanup_stale()
    console.print(f"Removed {removed} stale lock(s)")
