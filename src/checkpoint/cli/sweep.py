"""
CLI: ``checkpoint sweep``: back up every registered project.
"""

from __future__ import annotations

import typer

from checkpoint.cli.utils import build_runtime, console, output, setup
from checkpoint.core.signals import exit_on_signals


def sweep_command(
    force: bool = typer.Option(
        False, "--force", "-f", help="Preempt a running sweep and skip per-project interval gates"
    ),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Back up all enabled projects, one after another.

    Exit code 1 when any project failed; skipped projects do not fail the sweep.
    """
    runtime = build_runtime(setup("sweep"))
    with exit_on_signals():
        summary = runtime.orchestrator.sweep(force=force)

    if summary.already_running:
        console.print(f"[yellow]Sweep already running[/yellow] (pid {summary.owner_pid})")
        raise typer.Exit(code=0)

    if json_out:
        output(summary, as_json=True)
    else:
        output(summary.results, title="Sweep")
        console.print(
            f"\n[bold]{summary.status.value}[/bold]: {summary.backed_up} backed up "
            f"({summary.with_warnings} with warnings), {summary.failed} failed, "
            f"{summary.skipped} skipped of {summary.total}"
        )
    raise typer.Exit(code=summary.process_exit_code)
