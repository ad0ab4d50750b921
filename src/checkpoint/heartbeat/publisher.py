"""Heartbeat publisher.

Writes the status record consumed by the watchdog and by status displays.
Every write is temp-file-then-rename, so a reader never observes a record
that is half old and half new.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from checkpoint.core.fileio import atomic_write_json, read_json
from checkpoint.core.logging import get_logger
from checkpoint.heartbeat.models import HeartbeatRecord, HeartbeatStatus, SweepProgress

logger = get_logger(__name__)


class HeartbeatPublisher:
    """Atomic writer for one heartbeat file.

    Example:
        >>> publisher = HeartbeatPublisher(settings.heartbeat_file)
        >>> publisher.publish(HeartbeatStatus.SYNCING, project="web")
        >>> publisher.publish(HeartbeatStatus.HEALTHY, project="web",
        ...                   last_backup=1735200000, last_backup_files=412)
    """

    def __init__(
        self,
        path: Path,
        *,
        clock: Callable[[], float] = time.time,
        pid: int | None = None,
    ) -> None:
        self.path = Path(path)
        self._clock = clock
        self._pid = pid if pid is not None else os.getpid()

    def publish(
        self,
        status: HeartbeatStatus,
        *,
        project: str = "",
        last_backup: int = 0,
        last_backup_files: int = 0,
        error: str | None = None,
        progress: SweepProgress | None = None,
    ) -> HeartbeatRecord:
        record = HeartbeatRecord(
            timestamp=int(self._clock()),
            status=status.value,
            project=project,
            last_backup=last_backup,
            last_backup_files=last_backup_files,
            error=error,
            pid=self._pid,
            progress=progress,
        )
        atomic_write_json(self.path, record.to_dict())
        logger.debug("heartbeat_published", status=status.value, project=project)
        return record

    def read(self) -> HeartbeatRecord | None:
        return read_heartbeat(self.path)


def read_heartbeat(path: Path) -> HeartbeatRecord | None:
    """Parse the heartbeat at ``path``; None if missing or malformed."""
    data = read_json(path)
    if not isinstance(data, dict):
        return None
    try:
        return HeartbeatRecord.from_dict(data)
    except ValidationError:
        logger.debug("heartbeat_malformed", path=str(path))
        return None
