"""Debounced triggers: coordinator, fire-time gates and change-event sources."""

from checkpoint.triggers.coordinator import (
    TriggerCoordinator,
    TriggerReason,
    TriggerState,
    threading_timer,
)
from checkpoint.triggers.events import (
    DEFAULT_EXCLUDES,
    EventSource,
    ExcludeFilter,
    WatchdogEventSource,
    build_excludes,
    start_event_source,
)
from checkpoint.triggers.gates import (
    AlwaysReady,
    MarkerFileReadiness,
    ReadinessCheck,
    SessionTracker,
    interval_elapsed,
)

__all__ = [
    "AlwaysReady",
    "DEFAULT_EXCLUDES",
    "EventSource",
    "ExcludeFilter",
    "MarkerFileReadiness",
    "ReadinessCheck",
    "SessionTracker",
    "TriggerCoordinator",
    "TriggerReason",
    "TriggerState",
    "WatchdogEventSource",
    "build_excludes",
    "interval_elapsed",
    "start_event_source",
    "threading_timer",
]
