"""Projects, run results and sweep summaries."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from checkpoint.core.errors import CheckpointError
from checkpoint.core.hashing import project_id
from checkpoint.heartbeat.models import HeartbeatStatus
from checkpoint.retention.engine import RetentionPolicy, RetentionScope
from checkpoint.retention.tiers import build_tiers


class RetentionWindows(BaseModel):
    """Tier windows applied to a project's ``archived/`` snapshots.

    ``scope`` defaults to per-path bucketing so that every archived file keeps
    its own hourly/daily/weekly/monthly representatives. ``global`` keeps one
    snapshot per bucket across the whole project, which is far more aggressive.
    """

    hourly_hours: int = Field(default=24, gt=0)
    daily_days: int = Field(default=7, gt=0)
    weekly_weeks: int = Field(default=4, gt=0)
    monthly_months: int = Field(default=12, gt=0)
    scope: RetentionScope = RetentionScope.PER_PATH

    def policy(self) -> RetentionPolicy:
        tiers = build_tiers(
            hourly_hours=self.hourly_hours,
            daily_days=self.daily_days,
            weekly_weeks=self.weekly_weeks,
            monthly_months=self.monthly_months,
        )
        return RetentionPolicy(tiers, self.scope)


class ProjectConfig(BaseModel):
    """Per-project scheduling, readiness and retention settings.

    Fields
    ──────
    backup_interval         : Minimum seconds between successful runs
    idle_threshold          : Idle gap (s) that starts a new session at watcher startup
    debounce_seconds        : Quiet period after the last change before a run
    retention               : Tier windows and bucketing scope
    require_marker          : File that must exist for a run (e.g. on an external drive)
    backup_dir              : Backup root; defaults to ``<project>/backups``
    cleanup_interval_cycles : Apply retention every N successful runs
    excludes                : Extra change-event exclusion regexes
    """

    backup_interval: int = Field(default=3600, ge=0)
    idle_threshold: int = Field(default=600, ge=0)
    debounce_seconds: float = Field(default=60.0, gt=0)
    retention: RetentionWindows = Field(default_factory=RetentionWindows)
    require_marker: Path | None = None
    backup_dir: Path | None = None
    cleanup_interval_cycles: int = Field(default=6, ge=0)
    excludes: list[str] = Field(default_factory=list)


class Project(BaseModel):
    """A registered project directory."""

    id: str
    name: str
    path: Path
    enabled: bool = True
    added: int = 0
    last_backup: int | None = None
    config: ProjectConfig = Field(default_factory=ProjectConfig)

    @classmethod
    def create(
        cls,
        path: str | Path,
        name: str | None = None,
        config: ProjectConfig | None = None,
        *,
        now: float | None = None,
    ) -> Project:
        resolved = Path(path).expanduser().resolve(strict=False)
        display = name or resolved.name
        return cls(
            id=project_id(resolved, display),
            name=display,
            path=resolved,
            added=int(now if now is not None else time.time()),
            config=config or ProjectConfig(),
        )

    @property
    def backup_root(self) -> Path:
        if self.config.backup_dir is not None:
            backup = self.config.backup_dir.expanduser()
            return backup if backup.is_absolute() else self.path / backup
        return self.path / "backups"


class RunOutcome(str, Enum):
    BACKED_UP = "backed_up"
    BACKED_UP_WITH_WARNINGS = "backed_up_with_warnings"
    FAILED = "failed"
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    DIRECTORY_MISSING = "directory_missing"
    CONFIG_MISSING = "config_missing"
    DISABLED = "disabled"
    LOCK_BUSY = "lock_busy"
    INTERVAL = "interval"
    ENVIRONMENT_NOT_READY = "environment_not_ready"


@dataclass
class RunResult:
    """Outcome of one project run."""

    project: str
    outcome: RunOutcome
    skip_reason: SkipReason | None = None
    exit_code: int | None = None
    warnings: list[str] = field(default_factory=list)
    files: int = 0
    duration_seconds: float = 0.0
    finished_at: int | None = None
    error: CheckpointError | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (RunOutcome.BACKED_UP, RunOutcome.BACKED_UP_WITH_WARNINGS)

    @property
    def process_exit_code(self) -> int:
        """Single-run CLI exit code: 1 for failures, 2 for a missing directory
        or config marker, 0 otherwise."""
        if self.outcome is RunOutcome.FAILED:
            return 1
        if self.skip_reason in (SkipReason.DIRECTORY_MISSING, SkipReason.CONFIG_MISSING):
            return 2
        return 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "project": self.project,
            "outcome": self.outcome.value,
            "skip_reason": self.skip_reason.value if self.skip_reason else None,
            "exit_code": self.exit_code,
            "warnings": list(self.warnings),
            "files": self.files,
            "duration_seconds": round(self.duration_seconds, 3),
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class SweepSummary:
    """Tallies of one sweep.

    ``backed_up`` counts every successful project; ``with_warnings`` is the
    subset that succeeded with warnings.
    """

    total: int = 0
    backed_up: int = 0
    with_warnings: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[RunResult] = field(default_factory=list)
    already_running: bool = False
    owner_pid: int | None = None

    def record(self, result: RunResult) -> None:
        self.results.append(result)
        if result.outcome is RunOutcome.FAILED:
            self.failed += 1
        elif result.outcome is RunOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.backed_up += 1
            if result.outcome is RunOutcome.BACKED_UP_WITH_WARNINGS:
                self.with_warnings += 1

    @property
    def status(self) -> HeartbeatStatus:
        """Aggregate heartbeat status of the finished sweep."""
        if self.failed > 0:
            return HeartbeatStatus.ERROR
        if self.skipped > 0 and self.backed_up == 0:
            return HeartbeatStatus.STALE
        return HeartbeatStatus.HEALTHY

    @property
    def process_exit_code(self) -> int:
        return 1 if self.failed else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "backed_up": self.backed_up,
            "with_warnings": self.with_warnings,
            "failed": self.failed,
            "skipped": self.skipped,
            "status": self.status.value,
            "already_running": self.already_running,
            "results": [r.to_dict() for r in self.results],
        }
