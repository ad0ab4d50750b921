"""Heartbeat publish/consume protocol and the watchdog that consumes it."""

from checkpoint.heartbeat.models import (
    HeartbeatRecord,
    HeartbeatStatus,
    SweepProgress,
    WatchdogState,
    WatchdogStatus,
)
from checkpoint.heartbeat.notify import (
    CooldownNotifier,
    DesktopNotifier,
    LogNotifier,
    Notifier,
    Severity,
)
from checkpoint.heartbeat.publisher import HeartbeatPublisher, read_heartbeat
from checkpoint.heartbeat.watchdog import CheckResult, Observation, WatchdogMonitor

__all__ = [
    "CheckResult",
    "CooldownNotifier",
    "DesktopNotifier",
    "HeartbeatPublisher",
    "HeartbeatRecord",
    "HeartbeatStatus",
    "LogNotifier",
    "Notifier",
    "Observation",
    "Severity",
    "SweepProgress",
    "WatchdogMonitor",
    "WatchdogState",
    "WatchdogStatus",
    "read_heartbeat",
]
