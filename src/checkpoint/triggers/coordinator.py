"""Trigger/debounce coordinator.

Merges a burst of activity signals into one run request.

┌──────────────────────────────────────────────────────────────────────────────┐
│  STATE MACHINE                                                                │
│                                                                               │
│            signal                          signal (cancel + full window)      │
│   ┌──────┐ ─────────────► ┌───────────────┐ ◄──────┐                         │
│   │ IDLE │                │ TIMER_PENDING │ ───────┘                         │
│   └──────┘ ◄───────┐      └───────────────┘                                  │
│      ▲             │              │ timer fired                               │
│      │ run_now     │              ▼                                           │
│      │ (session)   │      ┌───────────────┐  signal: remember "dirty"         │
│      └─────────────┼────► │    RUNNING    │ ◄──────┐                         │
│                    │      └───────────────┘ ───────┘                         │
│                    │  done, clean │   │ done, dirty                          │
│                    └──────────────┘   └──────────► TIMER_PENDING             │
└──────────────────────────────────────────────────────────────────────────────┘

The timer is replaced, never extended: each signal cancels the pending
timer and starts a new one with the full window. Stale timer callbacks
(a cancel that lost the race with the timer thread) are recognised by a
generation number and ignored.
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from checkpoint.core.fileio import atomic_write_json, write_timestamp
from checkpoint.core.logging import get_logger

logger = get_logger(__name__)


class TriggerState(str, Enum):
    IDLE = "idle"
    TIMER_PENDING = "timer_pending"
    RUNNING = "running"


class TriggerReason(str, Enum):
    MANUAL = "manual"
    DEBOUNCE = "debounce"
    SESSION_START = "session_start"
    SWEEP = "sweep"


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], Timer]
FireCallback = Callable[[TriggerReason], Any]


def threading_timer(delay: float, callback: Callable[[], None]) -> Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class TriggerCoordinator:
    """Per-project debounce state machine.

    Example:
        >>> coordinator = TriggerCoordinator(
        ...     lambda reason: runner.run(project, trigger=reason),
        ...     debounce_seconds=60,
        ...     timer_file=state.timer_file,
        ... )
        >>> for path in changed_paths:
        ...     coordinator.signal(path)   # one run, 60s after the last change
    """

    def __init__(
        self,
        on_fire: FireCallback,
        *,
        debounce_seconds: float,
        timer_factory: TimerFactory = threading_timer,
        clock: Callable[[], float] = time.time,
        timer_file: Path | None = None,
        trigger_file: Path | None = None,
        name: str = "",
    ) -> None:
        self._on_fire = on_fire
        self.debounce_seconds = debounce_seconds
        self._timer_factory = timer_factory
        self._clock = clock
        self.timer_file = timer_file
        self.trigger_file = trigger_file
        self.name = name

        self._lock = threading.Lock()
        self._state = TriggerState.IDLE
        self._timer: Timer | None = None
        self._generation = 0
        self._dirty = False
        self._closed = False
        self._idle = threading.Event()
        self._idle.set()

        self.signals_received = 0
        self.runs_requested = 0

    @property
    def state(self) -> TriggerState:
        with self._lock:
            return self._state

    # === Events ===

    def signal(self, path: str | None = None) -> None:
        """ActivitySignal: (re)start the debounce window."""
        with self._lock:
            if self._closed:
                return
            self.signals_received += 1
            if self._state is TriggerState.RUNNING:
                self._dirty = True
                return
            self._restart_timer_locked()
        logger.debug("activity_signal", project=self.name, path=path)

    def run_now(self, reason: TriggerReason = TriggerReason.MANUAL) -> bool:
        """Request a run immediately, cancelling any pending timer.

        Returns:
            False if a run is already in progress
        """
        with self._lock:
            if self._closed or self._state is TriggerState.RUNNING:
                return False
            self._cancel_timer_locked()
            self._state = TriggerState.RUNNING
            self._idle.clear()
            self._dirty = False
        self._execute(reason)
        return True

    def close(self, timeout: float | None = None) -> bool:
        """Stop accepting signals, cancel any pending timer and wait for a running run.

        Args:
            timeout: Max seconds to wait for an in-flight run; None waits until it ends

        Returns:
            True once no run is executing, False if ``timeout`` elapsed first
        """
        with self._lock:
            self._closed = True
            self._cancel_timer_locked()
            if self._state is TriggerState.TIMER_PENDING:
                self._state = TriggerState.IDLE
            running = self._state is TriggerState.RUNNING
        if running:
            logger.info("waiting_for_run", project=self.name, timeout=timeout)
        finished = self._idle.wait(timeout)
        if not finished:
            logger.warning("close_timed_out", project=self.name, timeout=timeout)
        return finished

    # === Internals ===

    def _fire(self, generation: int) -> None:
        """TimerFired."""
        with self._lock:
            if generation != self._generation or self._state is not TriggerState.TIMER_PENDING:
                return
            self._timer = None
            self._clear_timer_file()
            self._state = TriggerState.RUNNING
            self._idle.clear()
            self._dirty = False
        self._execute(TriggerReason.DEBOUNCE)

    def _execute(self, reason: TriggerReason) -> None:
        self.runs_requested += 1
        if self.trigger_file is not None:
            write_timestamp(self.trigger_file, self._clock())
        logger.info("run_requested", project=self.name, reason=reason.value)
        try:
            self._on_fire(reason)
        except Exception as e:
            logger.exception("run_callback_failed", project=self.name, error=str(e))
        finally:
            self._complete()

    def _complete(self) -> None:
        """RunCompleted."""
        with self._lock:
            if self._dirty and not self._closed:
                self._dirty = False
                self._restart_timer_locked()
            else:
                self._state = TriggerState.IDLE
            self._idle.set()

    def _restart_timer_locked(self) -> None:
        self._cancel_timer_locked()
        self._generation += 1
        generation = self._generation
        self._timer = self._timer_factory(self.debounce_seconds, lambda: self._fire(generation))
        self._timer.start()
        self._state = TriggerState.TIMER_PENDING
        if self.timer_file is not None:
            atomic_write_json(
                self.timer_file,
                {
                    "pid": os.getpid(),
                    "generation": generation,
                    "deadline": int(self._clock() + self.debounce_seconds),
                },
            )

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._clear_timer_file()

    def _clear_timer_file(self) -> None:
        if self.timer_file is not None:
            self.timer_file.unlink(missing_ok=True)
