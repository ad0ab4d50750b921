"""Fire-time gates and the session-boundary heuristic.

Two independent gates run when a debounce timer fires, before the pipeline
is invoked:

    interval gate    skip if the last successful run is younger than the
                     project's backup interval
    readiness gate   skip silently if a required condition (e.g. the backup
                     drive's marker file) is absent; the next signal retries

The session heuristic is separate: at watcher startup, a long idle gap since
the last recorded activity means a new work session, which fires one run
immediately regardless of the interval gate.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from checkpoint.core.fileio import read_timestamp, write_timestamp
from checkpoint.core.logging import get_logger

logger = get_logger(__name__)


def interval_elapsed(last_success: float | None, interval: float, now: float) -> bool:
    """True when a new run is due under the minimum-interval gate."""
    if last_success is None:
        return True
    return now - last_success >= interval


class ReadinessCheck(Protocol):
    """Environment precondition for a run."""

    description: str

    def is_ready(self) -> bool: ...


class MarkerFileReadiness:
    """Ready when ``marker`` exists, e.g. a file at the root of an external drive."""

    def __init__(self, marker: Path) -> None:
        self.marker = Path(marker).expanduser()
        self.description = f"marker {self.marker}"

    def is_ready(self) -> bool:
        return self.marker.exists()


class AlwaysReady:
    description = "always"

    def is_ready(self) -> bool:
        return True


class SessionTracker:
    """Last-activity bookkeeping for the session-boundary heuristic.

    Example:
        >>> tracker = SessionTracker(state_dir / "last-activity", idle_threshold=600)
        >>> if tracker.is_new_session():
        ...     coordinator.run_now(TriggerReason.SESSION_START)
        >>> tracker.touch()
    """

    def __init__(
        self,
        activity_file: Path,
        idle_threshold: float,
        *,
        min_touch_interval: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.activity_file = Path(activity_file)
        self.idle_threshold = idle_threshold
        self.min_touch_interval = min_touch_interval
        self._clock = clock
        self._last_written: float | None = None

    def last_activity(self) -> int | None:
        return read_timestamp(self.activity_file)

    def idle_seconds(self) -> float | None:
        last = self.last_activity()
        if last is None:
            return None
        return self._clock() - last

    def is_new_session(self) -> bool:
        idle = self.idle_seconds()
        return idle is None or idle > self.idle_threshold

    def touch(self) -> None:
        """Record activity now (throttled to one write per ``min_touch_interval``)."""
        now = self._clock()
        if self._last_written is not None and now - self._last_written < self.min_touch_interval:
            return
        write_timestamp(self.activity_file, now)
        self._last_written = now
