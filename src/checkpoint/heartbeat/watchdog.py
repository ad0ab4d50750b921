"""Watchdog monitor: heartbeat staleness detection and auto-restart.

┌──────────────────────────────────────────────────────────────────────────────┐
│  WATCHDOG LOOP                                                                │
│                                                                               │
│   run(stop_event)                                                             │
│      │  write pid file                                                        │
│      ▼                                                                        │
│   ┌────────────────────────────────────────────────────────────────────┐     │
│   │  check_once()                                                      │     │
│   │    daemons = lifecycle.list(prefix) for each prefix, minus self    │     │
│   │    none registered            → status no_daemons                  │     │
│   │    heartbeat healthy/syncing  → failures = 0, status healthy       │     │
│   │    heartbeat stale/missing    → failures += 1, status warning      │     │
│   │        failures == ceiling    → restart all daemons, notify,       │     │
│   │                                 failures = 0                       │     │
│   │    heartbeat error            → failures = 0, status error, notify │     │
│   │    anything else              → status unknown                     │     │
│   │    write status file + own heartbeat                               │     │
│   └────────────────────────────────────────────────────────────────────┘     │
│      │                                                                        │
│   while not stop_event.wait(check_interval): check_once()                     │
│      │                                                                        │
│      ▼                                                                        │
│   shutdown(): status stopped, remove own heartbeat and pid file               │
└──────────────────────────────────────────────────────────────────────────────┘

The publisher's ``error`` status is never auto-restarted: the failing run
already finished and the next trigger retries it. Restarting only helps when
the heartbeat stops moving.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from checkpoint.core.errors import (
    DaemonLifecycleError,
    HeartbeatError,
    HeartbeatMissingError,
    HeartbeatStaleError,
)
from checkpoint.core.fileio import atomic_write_json, atomic_write_text
from checkpoint.core.logging import get_logger
from checkpoint.daemon.lifecycle import DaemonLifecycle
from checkpoint.heartbeat.models import (
    HeartbeatRecord,
    HeartbeatStatus,
    WatchdogState,
    WatchdogStatus,
)
from checkpoint.heartbeat.notify import Notifier, Severity
from checkpoint.heartbeat.publisher import read_heartbeat

logger = get_logger(__name__)


class Observation(str, Enum):
    HEALTHY = "healthy"
    SYNCING = "syncing"
    STALE = "stale"
    MISSING = "missing"
    ERROR = "error"
    UNKNOWN = "unknown"


FAILURE_OBSERVATIONS = (Observation.STALE, Observation.MISSING)
RESET_OBSERVATIONS = (Observation.HEALTHY, Observation.SYNCING)


@dataclass
class CheckResult:
    """Outcome of one watchdog cycle."""

    state: WatchdogState
    observation: Observation | None
    failures: int
    daemon_count: int
    age_seconds: float | None = None
    restarted: list[str] = field(default_factory=list)
    error: HeartbeatError | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "observation": self.observation.value if self.observation else None,
            "failures": self.failures,
            "daemon_count": self.daemon_count,
            "age_seconds": self.age_seconds,
            "restarted": list(self.restarted),
            "error": self.error.to_dict() if self.error else None,
        }


class WatchdogMonitor:
    """Polls the heartbeat and restarts supervised daemons when it stops moving.

    Example:
        >>> monitor = WatchdogMonitor(
        ...     heartbeat_file=settings.heartbeat_file,
        ...     status_file=settings.watchdog_status_file,
        ...     self_heartbeat_file=settings.watchdog_heartbeat_file,
        ...     pid_file=settings.watchdog_pid_file,
        ...     lifecycle=select_lifecycle(),
        ...     notifier=notifier,
        ...     service_prefixes=["checkpoint"],
        ...     own_service="checkpoint-watchdog",
        ... )
        >>> monitor.check_once().state
        <WatchdogState.HEALTHY: 'healthy'>
    """

    def __init__(
        self,
        *,
        heartbeat_file: Path,
        status_file: Path,
        self_heartbeat_file: Path,
        pid_file: Path,
        lifecycle: DaemonLifecycle,
        notifier: Notifier,
        service_prefixes: Sequence[str],
        own_service: str,
        stale_threshold: float = 300,
        check_interval: float = 60,
        max_failures: int = 3,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.heartbeat_file = Path(heartbeat_file)
        self.status_file = Path(status_file)
        self.self_heartbeat_file = Path(self_heartbeat_file)
        self.pid_file = Path(pid_file)
        self.lifecycle = lifecycle
        self.notifier = notifier
        self.service_prefixes = list(service_prefixes)
        self.own_service = own_service
        self.stale_threshold = stale_threshold
        self.check_interval = check_interval
        self.max_failures = max_failures
        self._clock = clock
        self._failures = 0
        self._restart_cycles = 0

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def restart_cycles(self) -> int:
        return self._restart_cycles

    # === Observation ===

    def list_daemons(self) -> list[str]:
        """Every supervised service, excluding the watchdog itself."""
        names: set[str] = set()
        for prefix in self.service_prefixes:
            for name in self.lifecycle.list(prefix):
                if name == self.own_service or name.endswith(f".{self.own_service}"):
                    continue
                names.add(name)
        return sorted(names)

    def observe(self) -> tuple[Observation, float | None, HeartbeatRecord | None]:
        """Classify the current heartbeat."""
        record = read_heartbeat(self.heartbeat_file)
        if record is None:
            return Observation.MISSING, None, None
        age = max(0.0, self._clock() - record.timestamp)
        if age >= self.stale_threshold:
            return Observation.STALE, age, record
        status = record.known_status
        if status is HeartbeatStatus.HEALTHY:
            return Observation.HEALTHY, age, record
        if status is HeartbeatStatus.SYNCING:
            return Observation.SYNCING, age, record
        if status is HeartbeatStatus.STALE:
            return Observation.STALE, age, record
        if status is HeartbeatStatus.ERROR:
            return Observation.ERROR, age, record
        return Observation.UNKNOWN, age, record

    # === One cycle ===

    def check_once(self) -> CheckResult:
        daemons = self.list_daemons()
        self._write_self_heartbeat()

        if not daemons:
            self._write_status(WatchdogState.NO_DAEMONS, 0)
            return CheckResult(
                state=WatchdogState.NO_DAEMONS,
                observation=None,
                failures=self._failures,
                daemon_count=0,
            )

        observation, age, record = self.observe()
        result = CheckResult(
            state=WatchdogState.UNKNOWN,
            observation=observation,
            failures=self._failures,
            daemon_count=len(daemons),
            age_seconds=age,
        )

        if observation in RESET_OBSERVATIONS:
            self._failures = 0
            result.state = WatchdogState.HEALTHY
        elif observation in FAILURE_OBSERVATIONS:
            self._failures += 1
            result.state = WatchdogState.WARNING
            if observation is Observation.MISSING:
                result.error = HeartbeatMissingError(str(self.heartbeat_file))
            else:
                result.error = HeartbeatStaleError(age or 0.0, self.stale_threshold)
            logger.warning(
                "heartbeat_unhealthy",
                failures=self._failures,
                max_failures=self.max_failures,
                **result.error.to_dict(),
            )
            if self._failures >= self.max_failures:
                result.restarted = self._restart_all(daemons)
                self._failures = 0
        elif observation is Observation.ERROR:
            self._failures = 0
            result.state = WatchdogState.ERROR
            message = (record.error if record else None) or "Backup reported an error"
            logger.error("heartbeat_error", project=record.project if record else "", error=message)
            self.notifier.notify("Checkpoint backup error", message, Severity.WARNING)
        else:
            logger.warning("heartbeat_unknown_status", status=record.status if record else None)

        result.failures = self._failures
        self._write_status(result.state, len(daemons))
        return result

    def _restart_all(self, daemons: Sequence[str]) -> list[str]:
        logger.warning("restarting_daemons", daemons=list(daemons))
        restarted = []
        for name in daemons:
            try:
                self.lifecycle.restart(name)
                restarted.append(name)
            except DaemonLifecycleError as exc:
                logger.error("daemon_restart_failed", service=name, **exc.to_dict())
        self._restart_cycles += 1
        self.notifier.notify(
            "Checkpoint restarted backups",
            f"Heartbeat stopped updating; restarted {len(restarted)} of {len(daemons)} services",
            Severity.CRITICAL,
        )
        return restarted

    # === Loop ===

    def run(self, stop_event: threading.Event) -> None:
        """Check immediately, then every ``check_interval`` until ``stop_event`` is set."""
        atomic_write_text(self.pid_file, f"{os.getpid()}\n")
        logger.info(
            "watchdog_started",
            check_interval=self.check_interval,
            stale_threshold=self.stale_threshold,
            max_failures=self.max_failures,
        )
        try:
            self._safe_check()
            while not stop_event.wait(self.check_interval):
                self._safe_check()
        finally:
            self.shutdown()

    def _safe_check(self) -> None:
        try:
            self.check_once()
        except Exception as e:
            logger.exception("watchdog_check_failed", error=str(e))

    def shutdown(self) -> None:
        self._write_status(WatchdogState.STOPPED, 0)
        self.self_heartbeat_file.unlink(missing_ok=True)
        self.pid_file.unlink(missing_ok=True)
        logger.info("watchdog_stopped")

    # === Files ===

    def _write_status(self, state: WatchdogState, daemon_count: int) -> None:
        status = WatchdogStatus(
            status=state,
            daemon_count=daemon_count,
            last_check=int(self._clock()),
            pid=os.getpid(),
        )
        atomic_write_json(self.status_file, status.to_dict())

    def _write_self_heartbeat(self) -> None:
        atomic_write_json(
            self.self_heartbeat_file,
            {"timestamp": int(self._clock()), "pid": os.getpid(), "status": "running"},
        )
