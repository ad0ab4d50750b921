"""
CLI: ``checkpoint run`` and ``checkpoint watch``.
"""

from __future__ import annotations

import threading

import typer

from checkpoint.cli.utils import build_runtime, console, output, resolve_project, setup
from checkpoint.core.signals import exit_on_signals, stop_on_signals
from checkpoint.locking import LockMode
from checkpoint.orchestrator.watcher import ProjectWatcher
from checkpoint.triggers.coordinator import TriggerReason


def run_command(
    project: str | None = typer.Argument(None, help="Project id, name or path (default: cwd)"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip the interval gate"),
    preempt: bool = typer.Option(
        False, "--preempt", help="Terminate a run already holding the lock and take over"
    ),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Back up one project now.

    Exit codes: 0 backed up, skipped or backed up with warnings; 1 failed;
    2 missing directory, config marker or bad configuration.
    """
    runtime = build_runtime(setup("run"))
    target = resolve_project(runtime, project, register=True)
    with exit_on_signals():
        result = runtime.runner.run(
            target,
            trigger=TriggerReason.MANUAL,
            force=force,
            lock_mode=LockMode.FORCE if preempt else LockMode.NORMAL,
        )
    output(result, as_json=json_out, title=f"Run: {target.name}")
    raise typer.Exit(code=result.process_exit_code)


def watch_command(
    project: str | None = typer.Argument(None, help="Project id, name or path (default: cwd)"),
    backend: str | None = typer.Option(
        None, "--backend", "-b", help="Change events: auto, native or poll"
    ),
    heartbeat_interval: float = typer.Option(
        60.0, "--heartbeat-interval", help="Seconds between idle heartbeat refreshes"
    ),
) -> None:
    """Watch a project and back it up after each burst of changes.

    Example::

        checkpoint watch ~/code/web --backend poll
    """
    settings = setup("watch")
    runtime = build_runtime(settings)
    target = resolve_project(runtime, project, register=True)
    watcher = ProjectWatcher(
        target,
        runtime.runner,
        backend=backend or settings.event_backend,
        poll_interval=settings.poll_interval,
        heartbeat_interval=heartbeat_interval,
        shutdown_timeout=settings.shutdown_timeout,
    )
    console.print(
        f"[bold green]Watching {target.name}[/bold green] "
        f"(debounce={target.config.debounce_seconds:g}s, path={target.path})"
    )
    with stop_on_signals(threading.Event()) as stop_event:
        watcher.run(stop_event)
    console.print("[yellow]Watcher stopped[/yellow]")
