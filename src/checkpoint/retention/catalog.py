"""On-disk snapshot catalog.

Backup directory layout written by the execution pipeline::

    <backup_root>/
        files/       mirror: latest copy of every file, same relative paths
        archived/    <relative dir>/<name>.<YYYYMMDD_HHMMSS>[_<n>][.age]
        databases/   <series>_<YYYYMMDD_HHMMSS>.<ext>
                     or "<series> - <mm.dd.yy> - <HH:MM>.<ext>"

Timestamps come from the file name when it carries one, otherwise from the
file's mtime. All timestamps are timezone-aware local time.
"""

from __future__ import annotations

import os
import re
from datetime import datetime
from pathlib import Path

from checkpoint.retention.engine import Generation, SnapshotEntry

ENCRYPTED_SUFFIX = ".age"

_ARCHIVE_NAME = re.compile(
    r"^(?P<name>.+)\.(?P<stamp>\d{8}_\d{6})(?:_[0-9A-Za-z]+)?(?:\.age)?$"
)
_DATABASE_NAME = re.compile(r"^(?P<series>.+?)_(?P<stamp>\d{8}_\d{6})(?:\..+)?$")
_DATABASE_HUMAN_NAME = re.compile(
    r"^(?P<series>.+?) - (?P<stamp>\d{2}\.\d{2}\.\d{2} - \d{2}[:.]\d{2})(?:\..+)?$"
)


def _local(stamp: str, fmt: str) -> datetime | None:
    try:
        return datetime.strptime(stamp, fmt).astimezone()
    except ValueError:
        return None


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime).astimezone()


def parse_archive_name(name: str) -> tuple[str, datetime] | None:
    """Split ``app.py.20250101_120000_1`` into ``("app.py", timestamp)``."""
    match = _ARCHIVE_NAME.match(name)
    if not match:
        return None
    timestamp = _local(match["stamp"], "%Y%m%d_%H%M%S")
    if timestamp is None:
        return None
    return match["name"], timestamp


def parse_database_name(name: str) -> tuple[str, datetime] | None:
    """Split a database dump name into ``(series, timestamp)``."""
    match = _DATABASE_NAME.match(name)
    if match:
        timestamp = _local(match["stamp"], "%Y%m%d_%H%M%S")
        if timestamp is not None:
            return match["series"], timestamp
    match = _DATABASE_HUMAN_NAME.match(name)
    if match:
        date_part, time_part = match["stamp"].split(" - ")
        timestamp = _local(f"{date_part} - {time_part.replace('.', ':')}", "%m.%d.%y - %H:%M")
        if timestamp is not None:
            return match["series"], timestamp
    return None


def _walk_files(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    files = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            if filename == ".DS_Store":
                continue
            files.append(Path(dirpath) / filename)
    return sorted(files)


class SnapshotCatalog:
    """Discovers Snapshot Entries under one project's backup root."""

    FILES_DIR = "files"
    ARCHIVED_DIR = "archived"
    DATABASES_DIR = "databases"

    def __init__(self, backup_root: Path) -> None:
        self.root = Path(backup_root)

    @property
    def files_dir(self) -> Path:
        return self.root / self.FILES_DIR

    @property
    def archived_dir(self) -> Path:
        return self.root / self.ARCHIVED_DIR

    @property
    def databases_dir(self) -> Path:
        return self.root / self.DATABASES_DIR

    def mirror_entries(self) -> list[SnapshotEntry]:
        entries = []
        for path in _walk_files(self.files_dir):
            relative = path.relative_to(self.files_dir).as_posix().removesuffix(ENCRYPTED_SUFFIX)
            entries.append(
                SnapshotEntry(
                    relative_path=relative,
                    timestamp=_mtime(path),
                    size=path.stat().st_size,
                    location=path,
                    generation=Generation.MIRROR,
                )
            )
        return entries

    def archived_entries(self) -> list[SnapshotEntry]:
        entries = []
        for path in _walk_files(self.archived_dir):
            parent = path.parent.relative_to(self.archived_dir)
            parsed = parse_archive_name(path.name)
            if parsed:
                name, timestamp = parsed
            else:
                name, timestamp = path.name.removesuffix(ENCRYPTED_SUFFIX), _mtime(path)
            entries.append(
                SnapshotEntry(
                    relative_path=(parent / name).as_posix(),
                    timestamp=timestamp,
                    size=path.stat().st_size,
                    location=path,
                    generation=Generation.ARCHIVED,
                )
            )
        return entries

    def database_entries(self) -> list[SnapshotEntry]:
        entries = []
        for path in _walk_files(self.databases_dir):
            parsed = parse_database_name(path.name)
            if parsed:
                series, timestamp = parsed
            else:
                series, timestamp = path.name, _mtime(path)
            entries.append(
                SnapshotEntry(
                    relative_path=f"{self.DATABASES_DIR}/{series}",
                    timestamp=timestamp,
                    size=path.stat().st_size,
                    location=path,
                    generation=Generation.ARCHIVED,
                )
            )
        return entries

    def prunable_entries(self) -> list[SnapshotEntry]:
        """Archived file versions and database dumps; the mirror is never pruned."""
        return self.archived_entries() + self.database_entries()

    def all_entries(self) -> list[SnapshotEntry]:
        return self.mirror_entries() + self.prunable_entries()

    def mirror_file_count(self) -> int:
        return len(_walk_files(self.files_dir))

    def remove_empty_dirs(self) -> int:
        """Remove empty directories left under ``archived/`` after pruning."""
        if not self.archived_dir.is_dir():
            return 0
        removed = 0
        for dirpath, _dirnames, _filenames in os.walk(self.archived_dir, topdown=False):
            path = Path(dirpath)
            if path == self.archived_dir:
                continue
            if not any(path.iterdir()):
                path.rmdir()
                removed += 1
        return removed
