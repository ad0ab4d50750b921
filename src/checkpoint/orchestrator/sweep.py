"""
Global multi-project sweep.

Manifesto:
    Scheduled sweeps back up every registered project, one at a time, in
    registry order. A project that is gone, unconfigured or locked by its
    own watcher is skipped and the sweep moves on; only the final tally
    decides how the sweep looks from the outside.

Architecture:

    ┌──────────────────────────────────────────────────────────┐
    │                    GlobalOrchestrator                    │
    │                                                          │
    │  sweep lock ─► for project in registry (enabled):        │
    │                  heartbeat syncing (index/total/tallies) │
    │                  validate ─► skipped                     │
    │                  ProjectRunner.execute ─► outcome        │
    │                  heartbeat syncing (updated tallies)     │
    │               final heartbeat healthy | stale | error    │
    │               orphan cleanup (daily, time-gated)         │
    └──────────────────────────────────────────────────────────┘

Tags:
    orchestration, sweep, multi-project, heartbeat, registry
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from checkpoint.core.errors import ConfigError, LockBusyError
from checkpoint.core.fileio import read_timestamp, write_timestamp
from checkpoint.core.logging import LogContext, get_logger
from checkpoint.heartbeat.models import HeartbeatStatus, SweepProgress
from checkpoint.heartbeat.publisher import HeartbeatPublisher
from checkpoint.locking import SWEEP_LOCK_KEY, LockMode, RunLockManager
from checkpoint.orchestrator.models import Project, RunOutcome, RunResult, SkipReason, SweepSummary
from checkpoint.orchestrator.registry import ProjectRegistry
from checkpoint.orchestrator.runner import ProjectRunner
from checkpoint.retention.catalog import SnapshotCatalog
from checkpoint.retention.engine import ApplyResult, PrunePlan, apply_plan
from checkpoint.retention.history import version_history

logger = get_logger(__name__)


class GlobalOrchestrator:
    """Runs sweeps over the project registry.

    Example:
        >>> orchestrator = GlobalOrchestrator(
        ...     registry=registry, runner=runner, locks=locks,
        ...     publisher=publisher, state_dir=settings.state_dir,
        ... )
        >>> summary = orchestrator.sweep()
        >>> summary.to_dict()["status"]
        'healthy'
    """

    def __init__(
        self,
        *,
        registry: ProjectRegistry,
        runner: ProjectRunner,
        locks: RunLockManager,
        publisher: HeartbeatPublisher,
        state_dir: Path,
        orphan_cleanup_interval: float = 86400,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.runner = runner
        self.locks = locks
        self.publisher = publisher
        self.state_dir = Path(state_dir)
        self.orphan_cleanup_interval = orphan_cleanup_interval
        self._clock = clock

    @property
    def cleanup_marker(self) -> Path:
        return self.state_dir / ".last-cleanup"

    # === Sweep ===

    def sweep(self, *, force: bool = False) -> SweepSummary:
        """Back up every enabled project once.

        With ``force`` a sweep already in progress is preempted and each
        project's pipeline is asked to skip its own interval gating.
        """
        mode = LockMode.FORCE if force else LockMode.NORMAL
        try:
            with self.locks.hold(SWEEP_LOCK_KEY, mode) as acquired:
                if acquired.warnings:
                    logger.warning("sweep_preempt_warnings", warnings=acquired.warnings)
                summary = self._sweep_projects(force)
        except LockBusyError as exc:
            logger.info("sweep_already_running", owner_pid=exc.owner_pid)
            return SweepSummary(already_running=True, owner_pid=exc.owner_pid)

        self.maybe_cleanup_orphans()
        return summary

    def _sweep_projects(self, force: bool) -> SweepSummary:
        projects = self.registry.list_projects(enabled_only=True)
        summary = SweepSummary(total=len(projects))
        logger.info("sweep_started", total=summary.total, force=force)

        for index, project in enumerate(projects, start=1):
            self._publish_progress(summary, index, project.name)
            with LogContext(project=project.name):
                result = self._sweep_one(project, force)
            summary.record(result)
            self._publish_progress(summary, index, project.name)

        failed = [r.project for r in summary.results if r.outcome is RunOutcome.FAILED]
        self.publisher.publish(
            summary.status,
            project="all",
            last_backup=int(self._clock()) if summary.backed_up else 0,
            last_backup_files=sum(r.files for r in summary.results),
            error=f"failed: {', '.join(failed)}" if failed else None,
        )
        logger.info(
            "sweep_completed",
            backed_up=summary.backed_up,
            with_warnings=summary.with_warnings,
            failed=summary.failed,
            skipped=summary.skipped,
            status=summary.status.value,
        )
        return summary

    def _sweep_one(self, project: Project, force: bool) -> RunResult:
        try:
            self.runner.validate(project)
        except ConfigError as exc:
            logger.warning("sweep_project_skipped", **exc.to_dict())
            reason = (
                SkipReason.DIRECTORY_MISSING
                if not project.path.is_dir()
                else SkipReason.CONFIG_MISSING
            )
            return RunResult(
                project=project.name,
                outcome=RunOutcome.SKIPPED,
                skip_reason=reason,
                finished_at=int(self._clock()),
                error=exc,
            )
        return self.runner.execute(project, force=force, publish=False)

    def _publish_progress(self, summary: SweepSummary, index: int, current: str) -> None:
        self.publisher.publish(
            HeartbeatStatus.SYNCING,
            project=current,
            progress=SweepProgress(
                index=index,
                total=summary.total,
                current_project=current,
                backed_up=summary.backed_up,
                failed=summary.failed,
                skipped=summary.skipped,
            ),
        )

    # === Orphans ===

    def maybe_cleanup_orphans(self) -> list[Project]:
        """Drop registry entries for deleted directories, at most once per interval.

        The first call only records the current time.
        """
        now = self._clock()
        last = read_timestamp(self.cleanup_marker)
        if last is None:
            write_timestamp(self.cleanup_marker, now)
            return []
        if now - last < self.orphan_cleanup_interval:
            return []

        orphans = self.registry.cleanup_orphaned()
        for project in orphans:
            self.runner.state(project).remove()
            if not self.locks.remove_if_stale(project.id):
                logger.debug("orphan_lock_kept", project=project.name)
        write_timestamp(self.cleanup_marker, now)
        if orphans:
            logger.info("orphans_cleaned", count=len(orphans))
        return orphans

    # === Retention ===

    def retention_report(
        self,
        project: Project,
        *,
        now: datetime | None = None,
        relative_path: str | None = None,
    ) -> dict[str, Any]:
        """Tier counts and prune preview for one project, plus the version
        history of ``relative_path`` when given."""
        moment = now or datetime.fromtimestamp(self._clock()).astimezone()
        catalog = SnapshotCatalog(project.backup_root)
        policy = project.config.retention.policy()
        entries = catalog.all_entries()
        plan = policy.plan(catalog.prunable_entries(), moment)
        report: dict[str, Any] = {
            "project": project.name,
            "backup_root": str(project.backup_root),
            "stats": policy.stats(catalog.prunable_entries(), moment).to_dict(),
            "plan": plan.to_dict(),
        }
        if relative_path is not None:
            history = version_history(
                relative_path,
                [e for e in entries if e.relative_path == relative_path],
                working_copy=project.path / relative_path,
            )
            report["history"] = [v.to_dict() for v in history]
        return report

    def prune(
        self,
        project: Project,
        *,
        apply: bool = False,
        now: datetime | None = None,
    ) -> tuple[PrunePlan, ApplyResult | None]:
        """Plan a prune for ``project``; delete only when ``apply`` is set."""
        plan = self.runner.plan_retention(project, now)
        if not apply:
            return plan, None
        result = apply_plan(plan)
        SnapshotCatalog(project.backup_root).remove_empty_dirs()
        logger.info("retention_applied", project=project.name, **result.to_dict())
        return plan, result
