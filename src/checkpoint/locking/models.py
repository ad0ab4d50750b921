"""Lock records and acquisition results."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class LockMode(str, Enum):
    """How to treat a live competing owner."""

    NORMAL = "normal"   # report Busy
    FORCE = "force"     # terminate, wait grace period, reclaim


class AcquireStatus(str, Enum):
    ACQUIRED = "acquired"
    BUSY = "busy"
    RECLAIMED = "reclaimed"


@dataclass(frozen=True)
class LockRecord:
    """Content of a lock file.

    ``token`` is unique per acquisition and is what release and stale-lock
    breaking compare against; PID alone is not enough once PIDs are reused.
    """

    pid: int
    start_time: float | None
    created_at: float
    token: str
    hostname: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def dumps(self) -> str:
        return json.dumps(self.to_dict()) + "\n"

    @classmethod
    def parse(cls, text: str, mtime: float) -> LockRecord | None:
        """Parse a JSON record or a legacy bare-PID lock file.

        Returns None for empty or unrecognised content.
        """
        text = text.strip()
        if not text:
            return None
        if text.isdigit():
            pid = int(text)
            return cls(pid=pid, start_time=None, created_at=mtime, token=f"legacy:{pid}:{mtime}")
        try:
            data = json.loads(text)
            return cls(
                pid=int(data["pid"]),
                start_time=data.get("start_time"),
                created_at=float(data.get("created_at", mtime)),
                token=str(data.get("token") or f"legacy:{data['pid']}:{mtime}"),
                hostname=data.get("hostname", ""),
            )
        except (ValueError, KeyError, TypeError):
            return None


@dataclass
class LockLease:
    """Handle to a lock this process holds."""

    key: str
    path: Path
    record: LockRecord


@dataclass
class AcquireResult:
    """Outcome of ``RunLockManager.acquire``.

    ``owner_pid`` is the competing holder for BUSY and the displaced holder
    for RECLAIMED (None when the lock was free).
    """

    status: AcquireStatus
    key: str
    owner_pid: int | None = None
    lease: LockLease | None = None
    previous: LockRecord | None = None
    reason: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def acquired(self) -> bool:
        return self.status in (AcquireStatus.ACQUIRED, AcquireStatus.RECLAIMED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "key": self.key,
            "owner_pid": self.owner_pid,
            "reason": self.reason,
            "warnings": list(self.warnings),
        }
