"""
CLI utility helpers: output formatting and component wiring.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from checkpoint.core.errors import CheckpointError, ConfigError
from checkpoint.core.logging import configure_logging
from checkpoint.core.settings import CheckpointSettings
from checkpoint.daemon.lifecycle import DaemonLifecycle, select_lifecycle
from checkpoint.heartbeat.notify import (
    CooldownNotifier,
    DesktopNotifier,
    LogNotifier,
    Notifier,
    Severity,
)
from checkpoint.heartbeat.publisher import HeartbeatPublisher
from checkpoint.heartbeat.watchdog import WatchdogMonitor
from checkpoint.locking import RunLockManager
from checkpoint.orchestrator.models import Project
from checkpoint.orchestrator.pipeline import CommandPipeline, ExecutionPipeline
from checkpoint.orchestrator.registry import ProjectRegistry
from checkpoint.orchestrator.runner import ProjectRunner
from checkpoint.orchestrator.sweep import GlobalOrchestrator

console = Console()
err_console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_USAGE = 2


# ── Runtime wiring ───────────────────────────────────────────────────────


@dataclass
class Runtime:
    """Every component a command may need, built from one settings object."""

    settings: CheckpointSettings
    locks: RunLockManager
    publisher: HeartbeatPublisher
    registry: ProjectRegistry
    runner: ProjectRunner
    orchestrator: GlobalOrchestrator

    def watchdog(
        self,
        lifecycle: DaemonLifecycle | None = None,
        notifier: Notifier | None = None,
    ) -> WatchdogMonitor:
        s = self.settings
        return WatchdogMonitor(
            heartbeat_file=s.heartbeat_file,
            status_file=s.watchdog_status_file,
            self_heartbeat_file=s.watchdog_heartbeat_file,
            pid_file=s.watchdog_pid_file,
            lifecycle=lifecycle or select_lifecycle(),
            notifier=notifier or build_notifier(s),
            service_prefixes=s.service_prefixes,
            own_service=s.watchdog_service,
            stale_threshold=s.stale_threshold,
            check_interval=s.check_interval,
            max_failures=s.max_failures,
        )


def load_settings() -> CheckpointSettings:
    try:
        return CheckpointSettings()
    except ValueError as exc:
        err_console.print(f"[bold red]Invalid configuration[/bold red]: {exc}")
        raise typer.Exit(code=EXIT_USAGE) from exc


def setup(command: str, settings: CheckpointSettings | None = None) -> CheckpointSettings:
    """Load settings and send this command's logs to its log file."""
    settings = settings or load_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.json_logs,
        service=f"checkpoint-{command}",
        log_file=settings.log_dir / f"{command}.log",
    )
    return settings


def build_notifier(settings: CheckpointSettings) -> Notifier:
    inner: Notifier = DesktopNotifier() if settings.notifications else LogNotifier()
    return CooldownNotifier(
        inner,
        settings.state_dir,
        {
            Severity.WARNING: settings.warning_cooldown,
            Severity.CRITICAL: settings.critical_cooldown,
        },
    )


def build_runtime(
    settings: CheckpointSettings,
    *,
    pipeline: ExecutionPipeline | None = None,
) -> Runtime:
    locks = RunLockManager(
        settings.lock_dir,
        force_grace_seconds=settings.force_grace_seconds,
        poll_interval=settings.lock_poll_interval,
        abandon_after_seconds=settings.lock_abandon_seconds,
    )
    publisher = HeartbeatPublisher(settings.heartbeat_file)
    registry = ProjectRegistry(settings.registry_file, locks, lock_wait=settings.registry_lock_wait)
    runner = ProjectRunner(
        locks=locks,
        pipeline=pipeline
        or CommandPipeline(
            settings.pipeline_command,
            timeout=settings.pipeline_timeout,
            warning_marker=settings.pipeline_warning_marker,
        ),
        publisher=publisher,
        state_root=settings.state_dir,
        config_marker=settings.config_marker,
        registry=registry,
    )
    orchestrator = GlobalOrchestrator(
        registry=registry,
        runner=runner,
        locks=locks,
        publisher=publisher,
        state_dir=settings.state_dir,
        orphan_cleanup_interval=settings.orphan_cleanup_interval,
    )
    return Runtime(
        settings=settings,
        locks=locks,
        publisher=publisher,
        registry=registry,
        runner=runner,
        orchestrator=orchestrator,
    )


def resolve_project(runtime: Runtime, ref: str | None, *, register: bool = False) -> Project:
    """Find a registered project by id, name or path (default: cwd).

    With ``register``, an unregistered directory is added on first use.
    """
    target = ref or str(Path.cwd())
    try:
        project = runtime.registry.get(target)
        if project is None and register and Path(target).expanduser().is_dir():
            project = runtime.registry.register(target)
    except CheckpointError as exc:
        fail(exc)
    if project is None:
        err_console.print(f"[bold red]Error[/bold red]: project not registered: {target}")
        raise typer.Exit(code=EXIT_USAGE)
    return project


def fail(error: CheckpointError) -> NoReturn:
    """Print ``error`` and exit: 2 for configuration errors, 1 otherwise."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error.message}")
    code = EXIT_USAGE if isinstance(error, ConfigError) else EXIT_FAILURE
    raise typer.Exit(code=code)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert a record / pydantic model / dataclass / dict to a plain dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def _default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    return str(value)


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a record or a list of records to the terminal."""
    if as_json:
        payload = [_to_dict(d) for d in data] if isinstance(data, list | tuple) else _to_dict(data)
        console.print_json(json.dumps(payload, default=_default))
        return

    if isinstance(data, list | tuple):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(list(data), title=title)
    else:
        _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of records as a Rich table."""
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(d.get(col, "")) for col in first))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
