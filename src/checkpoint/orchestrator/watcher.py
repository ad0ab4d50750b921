"""Per-project watcher process.

Wires the change-event source to the debounce coordinator and keeps the
heartbeat fresh while idle::

    EventSource ──► session.touch() ──► coordinator.signal(path)
                                             │ debounce elapsed
                                             ▼
                                  ProjectRunner.run(trigger=debounce)

On startup a long idle gap (no activity for ``idle_threshold`` seconds)
counts as a new session and triggers an immediate run that skips the
interval gate. On stop the watcher waits (bounded by ``shutdown_timeout``)
for an in-flight run to finish, so its lock and heartbeat are settled
before the process exits.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable

from checkpoint.core.logging import LogContext, get_logger
from checkpoint.core.process import is_process_alive
from checkpoint.heartbeat.models import HeartbeatStatus
from checkpoint.orchestrator.models import Project
from checkpoint.orchestrator.runner import ProjectRunner
from checkpoint.triggers.coordinator import (
    TimerFactory,
    TriggerCoordinator,
    TriggerReason,
    TriggerState,
    threading_timer,
)
from checkpoint.triggers.events import EventSource, build_excludes, start_event_source
from checkpoint.triggers.gates import SessionTracker

logger = get_logger(__name__)

EventSourceFactory = Callable[..., EventSource]


def _owned_elsewhere(pid: int) -> bool:
    return pid != os.getpid() and is_process_alive(pid)


class ProjectWatcher:
    """Long-running watcher for one project.

    Example:
        >>> watcher = ProjectWatcher(project, runner, backend="auto")
        >>> with stop_on_signals(stop_event):
        ...     watcher.run(stop_event)
    """

    def __init__(
        self,
        project: Project,
        runner: ProjectRunner,
        *,
        backend: str = "auto",
        poll_interval: float = 30.0,
        heartbeat_interval: float = 60.0,
        shutdown_timeout: float | None = 600.0,
        timer_factory: TimerFactory = threading_timer,
        source_factory: EventSourceFactory = start_event_source,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.project = project
        self.runner = runner
        self.backend = backend
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval
        self.shutdown_timeout = shutdown_timeout
        self._source_factory = source_factory
        self._clock = clock

        state = runner.state(project)
        self.session = SessionTracker(
            state.activity_file, project.config.idle_threshold, clock=clock
        )
        self.coordinator = TriggerCoordinator(
            self._on_fire,
            debounce_seconds=project.config.debounce_seconds,
            timer_factory=timer_factory,
            clock=clock,
            timer_file=state.timer_file,
            trigger_file=state.trigger_file,
            name=project.name,
        )

    def _on_fire(self, reason: TriggerReason) -> None:
        self.runner.run(
            self.project,
            trigger=reason,
            bypass_interval=reason is TriggerReason.SESSION_START,
        )

    def on_change(self, path: str) -> None:
        self.session.touch()
        self.coordinator.signal(path)

    def start_session(self) -> bool:
        """Run immediately if the project has been idle long enough."""
        new_session = self.session.is_new_session()
        self.session.touch()
        if not new_session:
            return False
        logger.info("session_started", project=self.project.name)
        return self.coordinator.run_now(TriggerReason.SESSION_START)

    def refresh_heartbeat(self) -> None:
        """Re-stamp the heartbeat while idle.

        An ``error`` or ``stale`` record keeps its status and message until
        the next run replaces it. A ``syncing`` record belongs to another
        process (a sweep) and is left for that process to refresh.
        """
        if self.coordinator.state is TriggerState.RUNNING:
            return
        publisher = self.runner.publisher
        current = publisher.read()
        status = current.known_status if current is not None else None
        if status is HeartbeatStatus.SYNCING and _owned_elsewhere(current.pid):
            return
        if status in (HeartbeatStatus.ERROR, HeartbeatStatus.STALE):
            publisher.publish(
                status,
                project=current.project,
                last_backup=current.last_backup,
                last_backup_files=current.last_backup_files,
                error=current.error,
            )
            return
        publisher.publish(
            HeartbeatStatus.HEALTHY,
            project=self.project.name,
            last_backup=self.runner.state(self.project).last_backup() or 0,
        )

    def run(self, stop_event: threading.Event) -> None:
        """Block until ``stop_event`` is set."""
        excludes = build_excludes(
            self.project.path, self.project.config.excludes, self.project.backup_root
        )
        with LogContext(project=self.project.name):
            source = self._source_factory(
                self.project.path,
                self.on_change,
                backend=self.backend,
                poll_interval=self.poll_interval,
                excludes=excludes,
            )
            logger.info("watcher_started", path=str(self.project.path), backend=source.backend)
            try:
                self.start_session()
                self.refresh_heartbeat()
                while not stop_event.wait(self.heartbeat_interval):
                    try:
                        self.refresh_heartbeat()
                    except Exception as e:
                        logger.exception("heartbeat_refresh_failed", error=str(e))
            finally:
                source.stop()
                self.coordinator.close(timeout=self.shutdown_timeout)
                logger.info(
                    "watcher_stopped",
                    signals=self.coordinator.signals_received,
                    runs=self.coordinator.runs_requested,
                )
