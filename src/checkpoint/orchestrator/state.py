"""Per-project state directory.

One directory per project id under ``<home>/state``, holding small files that
independent processes (watcher, sweep, CLI run) read and write atomically::

    last-backup-time   epoch of the last successful run (interval gate)
    last-activity      epoch of the last change / watcher start (session gate)
    last-trigger       epoch of the last run request
    watcher-timer      pending debounce timer {pid, generation, deadline}
    cycles             successful runs since the state dir was created
"""

from __future__ import annotations

import shutil
from pathlib import Path

from checkpoint.core.fileio import atomic_write_text, read_timestamp, write_timestamp


class ProjectState:
    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    @property
    def last_backup_file(self) -> Path:
        return self.directory / "last-backup-time"

    @property
    def activity_file(self) -> Path:
        return self.directory / "last-activity"

    @property
    def trigger_file(self) -> Path:
        return self.directory / "last-trigger"

    @property
    def timer_file(self) -> Path:
        return self.directory / "watcher-timer"

    @property
    def cycles_file(self) -> Path:
        return self.directory / "cycles"

    def last_backup(self) -> int | None:
        return read_timestamp(self.last_backup_file)

    def record_backup(self, timestamp: float) -> None:
        write_timestamp(self.last_backup_file, timestamp)

    def cycles(self) -> int:
        return read_timestamp(self.cycles_file) or 0

    def increment_cycles(self) -> int:
        count = self.cycles() + 1
        atomic_write_text(self.cycles_file, f"{count}\n")
        return count

    def remove(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)
