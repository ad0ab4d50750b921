"""User notifications with per-severity cooldown.

The watchdog can observe the same problem every minute for hours; the
cooldown wrapper remembers (in the state directory, so it survives
restarts) when each severity was last shown and drops repeats.
"""

from __future__ import annotations

import shutil
import subprocess
import sys
import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Protocol

from checkpoint.core.fileio import read_timestamp, write_timestamp
from checkpoint.core.logging import get_logger

logger = get_logger(__name__)


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class Notifier(Protocol):
    def notify(self, title: str, message: str, severity: Severity = Severity.INFO) -> bool: ...


class LogNotifier:
    """Log-only notifier, used when desktop notifications are disabled."""

    def notify(self, title: str, message: str, severity: Severity = Severity.INFO) -> bool:
        logger.info("notification", title=title, message=message, severity=severity.value)
        return True


class DesktopNotifier:
    """notify-send on Linux, osascript on macOS, log-only elsewhere."""

    def __init__(self, platform: str | None = None) -> None:
        self.platform = platform or sys.platform

    def _command(self, title: str, message: str, severity: Severity) -> list[str] | None:
        if self.platform == "darwin":
            safe_title = title.replace('"', "'")
            safe_message = message.replace('"', "'")
            return [
                "osascript",
                "-e",
                f'display notification "{safe_message}" with title "{safe_title}"',
            ]
        if shutil.which("notify-send"):
            urgency = "critical" if severity is Severity.CRITICAL else "normal"
            return ["notify-send", "--urgency", urgency, title, message]
        return None

    def notify(self, title: str, message: str, severity: Severity = Severity.INFO) -> bool:
        logger.info("notification", title=title, message=message, severity=severity.value)
        command = self._command(title, message, severity)
        if command is None:
            return False
        try:
            result = subprocess.run(command, capture_output=True, text=True, timeout=10, check=False)
        except (OSError, subprocess.TimeoutExpired) as exc:
            logger.warning("notification_failed", error=str(exc))
            return False
        return result.returncode == 0


class CooldownNotifier:
    """Suppress repeats of the same severity within its cooldown window.

    Example:
        >>> notifier = CooldownNotifier(DesktopNotifier(), state_dir,
        ...                             {Severity.WARNING: 4 * 3600})
        >>> notifier.notify("Checkpoint", "Backup stale", Severity.WARNING)
        True
        >>> notifier.notify("Checkpoint", "Backup stale", Severity.WARNING)
        False
    """

    def __init__(
        self,
        inner: Notifier,
        state_dir: Path,
        cooldowns: dict[Severity, int],
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.inner = inner
        self.state_dir = Path(state_dir)
        self.cooldowns = cooldowns
        self._clock = clock

    def _state_file(self, severity: Severity) -> Path:
        return self.state_dir / f".last-{severity.value}-notification"

    def notify(self, title: str, message: str, severity: Severity = Severity.INFO) -> bool:
        cooldown = self.cooldowns.get(severity, 0)
        now = self._clock()
        if cooldown:
            last = read_timestamp(self._state_file(severity))
            if last is not None and now - last < cooldown:
                logger.debug("notification_suppressed", severity=severity.value, title=title)
                return False
        self.inner.notify(title, message, severity)
        if cooldown:
            write_timestamp(self._state_file(severity), now)
        return True
