"""Termination-signal handling for long-running processes.

SIGTERM and SIGHUP are turned into ``SystemExit`` so every ``finally`` block
and context manager on the main thread unwinds normally: run locks are
released, timer state files removed, and the watchdog writes its ``stopped``
status. SIGINT already raises ``KeyboardInterrupt``.
"""

from __future__ import annotations

import signal
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from types import FrameType

from checkpoint.core.logging import get_logger

logger = get_logger(__name__)

TERMINATION_SIGNALS = tuple(
    sig for sig in (signal.SIGTERM, getattr(signal, "SIGHUP", None)) if sig is not None
)


def _raise_exit(signum: int, frame: FrameType | None) -> None:
    logger.info("termination_signal", signal=signal.Signals(signum).name)
    raise SystemExit(128 + signum)


@contextmanager
def exit_on_signals() -> Iterator[None]:
    """Convert SIGTERM/SIGHUP into SystemExit for the enclosed block."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = {sig: signal.signal(sig, _raise_exit) for sig in TERMINATION_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)


@contextmanager
def stop_on_signals(stop_event: threading.Event) -> Iterator[threading.Event]:
    """Set ``stop_event`` on SIGTERM/SIGHUP/SIGINT instead of raising.

    Used by loops that block on ``stop_event.wait(interval)`` so they finish
    the current cycle and run their shutdown path.
    """
    if threading.current_thread() is not threading.main_thread():
        yield stop_event
        return

    def _handler(signum: int, frame: FrameType | None) -> None:
        logger.info("stop_signal", signal=signal.Signals(signum).name)
        stop_event.set()

    sigs: tuple[int, ...] = (*TERMINATION_SIGNALS, signal.SIGINT)
    previous: dict[int, Callable | int | None] = {
        sig: signal.signal(sig, _handler) for sig in sigs
    }
    try:
        yield stop_event
    finally:
        for sig, handler in previous.items():
            if handler is not None:
                signal.signal(sig, handler)
