"""Heartbeat and watchdog status records.

The heartbeat is a flat JSON object so that shell tooling and status bars can
read it without knowing the progress sub-record structure; ``SweepProgress``
is flattened into ``syncing_*`` keys on write and rebuilt on read.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class HeartbeatStatus(str, Enum):
    HEALTHY = "healthy"
    SYNCING = "syncing"
    STALE = "stale"
    ERROR = "error"


class WatchdogState(str, Enum):
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"
    UNKNOWN = "unknown"
    NO_DAEMONS = "no_daemons"
    STOPPED = "stopped"


class SweepProgress(BaseModel):
    """Position and running tallies of an in-flight sweep."""

    index: int
    total: int
    current_project: str = ""
    backed_up: int = 0
    failed: int = 0
    skipped: int = 0


_PROGRESS_FIELDS = {
    "syncing_project_index": "index",
    "syncing_total_projects": "total",
    "syncing_current_project": "current_project",
    "syncing_backed_up": "backed_up",
    "syncing_failed": "failed",
    "syncing_skipped": "skipped",
}


class HeartbeatRecord(BaseModel):
    """One heartbeat snapshot.

    ``status`` is kept as a plain string on read so a record written by a
    newer publisher with an unfamiliar status still parses; the watchdog
    treats unfamiliar values as ``unknown``.
    """

    model_config = ConfigDict(extra="ignore")

    timestamp: int
    status: str
    project: str = ""
    last_backup: int = 0
    last_backup_files: int = 0
    error: str | None = None
    pid: int = 0
    progress: SweepProgress | None = None

    @property
    def known_status(self) -> HeartbeatStatus | None:
        try:
            return HeartbeatStatus(self.status)
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "timestamp": self.timestamp,
            "status": self.status,
            "project": self.project,
            "last_backup": self.last_backup,
            "last_backup_files": self.last_backup_files,
            "error": self.error,
            "pid": self.pid,
        }
        if self.progress is not None:
            for key, attr in _PROGRESS_FIELDS.items():
                data[key] = getattr(self.progress, attr)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeartbeatRecord:
        payload = dict(data)
        if "syncing_project_index" in payload and "syncing_total_projects" in payload:
            payload["progress"] = {
                attr: payload[key] for key, attr in _PROGRESS_FIELDS.items() if key in payload
            }
        return cls.model_validate(payload)


class WatchdogStatus(BaseModel):
    """Watchdog status file content."""

    status: WatchdogState
    daemon_count: int = 0
    last_check: int
    pid: int

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
