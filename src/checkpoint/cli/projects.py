"""
CLI: ``checkpoint projects``: registry management.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import typer

from checkpoint.cli.utils import EXIT_USAGE, build_runtime, console, err_console, fail, output, setup
from checkpoint.core.errors import CheckpointError
from checkpoint.orchestrator.models import Project

app = typer.Typer(no_args_is_help=True)


def _row(project: Project) -> dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "path": str(project.path),
        "enabled": project.enabled,
        "last_backup": project.last_backup,
    }


@app.command("list")
def list_projects(
    enabled_only: bool = typer.Option(False, "--enabled", help="Only enabled projects"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List registered projects in sweep order."""
    runtime = build_runtime(setup("projects"))
    try:
        projects = runtime.registry.list_projects(enabled_only=enabled_only)
    except CheckpointError as exc:
        fail(exc)
    output([_row(p) for p in projects], as_json=json_out, title="Projects")


@app.command("add")
def add(
    path: Path = typer.Argument(..., help="Project directory"),
    name: str | None = typer.Option(None, "--name", "-n"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Register a project directory (idempotent)."""
    if not path.expanduser().is_dir():
        err_console.print(f"[bold red]Error[/bold red]: not a directory: {path}")
        raise typer.Exit(code=EXIT_USAGE)
    runtime = build_runtime(setup("projects"))
    try:
        project = runtime.registry.register(path, name)
    except CheckpointError as exc:
        fail(exc)
    output(_row(project), as_json=json_out, title="Registered")


@app.command("remove")
def remove(ref: str = typer.Argument(..., help="Project id, name or path")) -> None:
    """Unregister a project. Its backups are left in place."""
    runtime = build_runtime(setup("projects"))
    try:
        removed = runtime.registry.unregister(ref)
    except CheckpointError as exc:
        fail(exc)
    if not removed:
        err_console.print(f"[bold red]Error[/bold red]: project not registered: {ref}")
        raise typer.Exit(code=EXIT_USAGE)
    console.print(f"[green]Removed[/green] {ref}")


def _set_enabled(ref: str, enabled: bool) -> None:
    runtime = build_runtime(setup("projects"))
    try:
        project = runtime.registry.set_enabled(ref, enabled)
    except CheckpointError as exc:
        fail(exc)
    console.print(f"{project.name}: {'enabled' if enabled else 'disabled'}")


@app.command("enable")
def enable(ref: str = typer.Argument(..., help="Project id, name or path")) -> None:
    """Include a project in sweeps."""
    _set_enabled(ref, True)


@app.command("disable")
def disable(ref: str = typer.Argument(..., help="Project id, name or path")) -> None:
    """Exclude a project from sweeps."""
    _set_enabled(ref, False)


@app.command("cleanup")
def cleanup(json_out: bool = typer.Option(False, "--json")) -> None:
    """Remove projects whose directory no longer exists, with their state and locks."""
    runtime = build_runtime(setup("projects"))
    try:
        orphans = runtime.registry.cleanup_orphaned()
    except CheckpointError as exc:
        fail(exc)
    for project in orphans:
        runtime.runner.state(project).remove()
        runtime.locks.remove_if_stale(project.id)
    output([_row(p) for p in orphans], as_json=json_out, title="Removed orphans")
