"""Process identity and liveness via psutil.

A PID alone is ambiguous once the OS recycles it, so every identity we
persist pairs the PID with the process start time reported by the kernel.
A recorded owner is live only when a process with that PID exists, is not a
zombie, and started at the recorded time.
"""

from __future__ import annotations

import os
import socket
import time
from collections.abc import Callable
from dataclasses import dataclass

import psutil

from checkpoint.core.logging import get_logger

logger = get_logger(__name__)

# psutil derives create_time from boot time + jiffies; allow for rounding.
START_TIME_TOLERANCE = 1.0


@dataclass(frozen=True)
class ProcessIdentity:
    """PID plus start-time token of a process."""

    pid: int
    start_time: float | None
    hostname: str = ""

    @classmethod
    def current(cls) -> ProcessIdentity:
        pid = os.getpid()
        return cls(pid=pid, start_time=process_start_time(pid), hostname=socket.gethostname())


def process_start_time(pid: int) -> float | None:
    """Kernel-reported start time of ``pid``, or None if unavailable."""
    try:
        return psutil.Process(pid).create_time()
    except (psutil.NoSuchProcess, psutil.AccessDenied, ValueError):
        return None


def is_process_alive(pid: int, start_time: float | None = None) -> bool:
    """Check whether ``pid`` is running and (if given) started at ``start_time``."""
    if pid <= 0:
        return False
    try:
        proc = psutil.Process(pid)
        if proc.status() == psutil.STATUS_ZOMBIE:
            return False
        if start_time is None:
            return True
        return abs(proc.create_time() - start_time) <= START_TIME_TOLERANCE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but belongs to another user; cannot verify the start time.
        return True


def terminate_process(pid: int) -> bool:
    """Send SIGTERM to ``pid``. Returns False if it was already gone."""
    try:
        psutil.Process(pid).terminate()
        return True
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        logger.warning("terminate_denied", pid=pid)
        return False


def wait_for_exit(
    is_alive: Callable[[], bool],
    timeout: float,
    poll_interval: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """Poll ``is_alive`` in short steps until it is False or ``timeout`` elapses.

    Returns:
        True if the process exited within the grace period.
    """
    deadline = clock() + timeout
    while is_alive():
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(poll_interval, remaining))
    return True
