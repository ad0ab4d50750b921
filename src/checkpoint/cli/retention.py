"""
CLI: ``checkpoint retention``: tier stats, prune preview/apply, version history.
"""

from __future__ import annotations

import typer

from checkpoint.cli.utils import build_runtime, console, output, resolve_project, setup

app = typer.Typer(no_args_is_help=True)


@app.command("stats")
def stats(
    project: str | None = typer.Argument(None, help="Project id, name or path (default: cwd)"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Count archived snapshots per retention tier."""
    runtime = build_runtime(setup("retention"))
    target = resolve_project(runtime, project)
    report = runtime.orchestrator.retention_report(target)
    output(report["stats"], as_json=json_out, title=f"Retention: {target.name}")


@app.command("prune")
def prune(
    project: str | None = typer.Argument(None, help="Project id, name or path (default: cwd)"),
    apply: bool = typer.Option(False, "--apply", help="Delete; without it only a preview is shown"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Preview (or with --apply, perform) a retention prune."""
    runtime = build_runtime(setup("retention"))
    target = resolve_project(runtime, project)
    plan, applied = runtime.orchestrator.prune(target, apply=apply)

    if json_out:
        payload = plan.to_dict()
        if applied is not None:
            payload["applied"] = applied.to_dict()
        output(payload, as_json=True)
        return

    if plan.delete:
        output([d.to_dict() for d in plan.delete], title=f"Prune: {target.name}")
    console.print(
        f"keep {len(plan.keep)}, delete {len(plan.delete)}, frees {plan.freed_bytes} bytes"
    )
    if applied is None:
        console.print("[dim]Preview only; re-run with --apply to delete.[/dim]")
    elif applied.failed:
        console.print(f"[red]{len(applied.failed)} deletions failed[/red]")
        raise typer.Exit(code=1)
    else:
        console.print(f"[green]Deleted {len(applied.deleted)} files[/green]")


@app.command("history")
def history(
    path: str = typer.Argument(..., help="File path relative to the project root"),
    project: str | None = typer.Option(None, "--project", "-p"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List every retained version of one file, newest first."""
    runtime = build_runtime(setup("retention"))
    target = resolve_project(runtime, project)
    report = runtime.orchestrator.retention_report(target, relative_path=path)
    output(report["history"], as_json=json_out, title=f"History: {path}")
