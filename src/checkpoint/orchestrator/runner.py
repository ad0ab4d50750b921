"""Single project run.

``ProjectRunner.run`` is what a debounce timer, a session start, or
``checkpoint run`` executes for one project::

    validate dir + config marker ──► interval gate ──► readiness gate
        │ missing: skipped               │ too soon: skipped   │ not ready: skipped
        ▼                                                       (silent)
    run lock (normal / force) ──► busy: skipped
        │
        ▼
    heartbeat syncing ──► pipeline ──► outcome ──► state + registry
        │                                              │
        ▼                                              ▼
    heartbeat healthy / error        retention every N successful runs

``execute`` is the lock-and-pipeline core shared with the global sweep,
which handles gates and heartbeats itself.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime

from checkpoint.core.errors import (
    CheckpointError,
    ConfigMissingError,
    DirectoryMissingError,
    EnvironmentNotReadyError,
    ExecutionFailedError,
    LockBusyError,
)
from checkpoint.core.logging import LogContext, get_logger
from checkpoint.heartbeat.models import HeartbeatStatus
from checkpoint.heartbeat.publisher import HeartbeatPublisher
from checkpoint.locking import LockMode, RunLockManager
from checkpoint.orchestrator.models import Project, RunOutcome, RunResult, SkipReason
from checkpoint.orchestrator.pipeline import ExecutionPipeline, classify_outcome
from checkpoint.orchestrator.registry import ProjectRegistry
from checkpoint.orchestrator.state import ProjectState
from checkpoint.retention.catalog import SnapshotCatalog
from checkpoint.retention.engine import PrunePlan, apply_plan
from checkpoint.triggers.coordinator import TriggerReason
from checkpoint.triggers.gates import MarkerFileReadiness, interval_elapsed

logger = get_logger(__name__)


class ProjectRunner:
    def __init__(
        self,
        *,
        locks: RunLockManager,
        pipeline: ExecutionPipeline,
        publisher: HeartbeatPublisher,
        state_root,
        config_marker: str,
        registry: ProjectRegistry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.locks = locks
        self.pipeline = pipeline
        self.publisher = publisher
        self.state_root = state_root
        self.config_marker = config_marker
        self.registry = registry
        self._clock = clock

    def state(self, project: Project) -> ProjectState:
        return ProjectState(self.state_root / project.id)

    # === Checks ===

    def validate(self, project: Project) -> None:
        """Raise if the project cannot be backed up at all.

        Raises:
            DirectoryMissingError: the project directory is gone
            ConfigMissingError: the backup configuration marker is absent
        """
        if not project.path.is_dir():
            raise DirectoryMissingError(str(project.path)).with_context(project=project.name)
        if self.config_marker and not (project.path / self.config_marker).exists():
            raise ConfigMissingError(str(project.path / self.config_marker)).with_context(
                project=project.name
            )

    def check_readiness(self, project: Project) -> None:
        marker = project.config.require_marker
        if marker is None:
            return
        check = MarkerFileReadiness(marker)
        if not check.is_ready():
            raise EnvironmentNotReadyError(f"{check.description} is absent").with_context(
                project=project.name
            )

    def interval_due(self, project: Project) -> bool:
        last = self.state(project).last_backup()
        return interval_elapsed(last, project.config.backup_interval, self._clock())

    # === Runs ===

    def run(
        self,
        project: Project,
        *,
        trigger: TriggerReason = TriggerReason.MANUAL,
        force: bool = False,
        lock_mode: LockMode = LockMode.NORMAL,
        bypass_interval: bool = False,
    ) -> RunResult:
        """Gated single run with heartbeats."""
        with LogContext(project=project.name, trigger=trigger.value):
            try:
                self.validate(project)
            except DirectoryMissingError as exc:
                logger.warning("run_skipped", reason=SkipReason.DIRECTORY_MISSING.value)
                return self._skipped(project, SkipReason.DIRECTORY_MISSING, exc)
            except ConfigMissingError as exc:
                logger.warning("run_skipped", reason=SkipReason.CONFIG_MISSING.value)
                return self._skipped(project, SkipReason.CONFIG_MISSING, exc)

            if not (force or bypass_interval or self.interval_due(project)):
                logger.info("run_skipped", reason=SkipReason.INTERVAL.value)
                return self._skipped(project, SkipReason.INTERVAL)

            try:
                self.check_readiness(project)
            except EnvironmentNotReadyError as exc:
                logger.debug("run_skipped", reason=SkipReason.ENVIRONMENT_NOT_READY.value)
                return self._skipped(project, SkipReason.ENVIRONMENT_NOT_READY, exc)

            result = self.execute(project, force=force, lock_mode=lock_mode, publish=True)
            if result.succeeded:
                self._maybe_maintain(project)
            return result

    def execute(
        self,
        project: Project,
        *,
        force: bool = False,
        lock_mode: LockMode = LockMode.NORMAL,
        publish: bool = False,
    ) -> RunResult:
        """Take the project lock, run the pipeline and record the outcome."""
        try:
            with self.locks.hold(project.id, lock_mode) as acquired:
                if acquired.warnings:
                    logger.warning("lock_preempt_warnings", warnings=acquired.warnings)
                if publish:
                    self.publisher.publish(
                        HeartbeatStatus.SYNCING,
                        project=project.name,
                        last_backup=self.state(project).last_backup() or 0,
                    )
                result = self._invoke(project, force)
        except LockBusyError as exc:
            logger.info("run_skipped", reason=SkipReason.LOCK_BUSY.value, owner_pid=exc.owner_pid)
            return self._skipped(project, SkipReason.LOCK_BUSY, exc)

        if result.succeeded:
            self._record_success(project, result)
        if publish:
            self._publish_result(project, result)
        return result

    def _invoke(self, project: Project, force: bool) -> RunResult:
        started = time.monotonic()
        try:
            outcome = self.pipeline.run(project, force=force)
        except ExecutionFailedError as exc:
            logger.error("run_failed", **exc.to_dict())
            return RunResult(
                project=project.name,
                outcome=RunOutcome.FAILED,
                duration_seconds=time.monotonic() - started,
                finished_at=int(self._clock()),
                error=exc,
            )

        result = RunResult(
            project=project.name,
            outcome=classify_outcome(outcome),
            exit_code=outcome.exit_code,
            warnings=list(outcome.warnings),
            duration_seconds=time.monotonic() - started,
            finished_at=int(self._clock()),
        )
        if result.outcome is RunOutcome.FAILED:
            result.error = ExecutionFailedError(
                f"Pipeline exited with status {outcome.exit_code}",
                exit_code=outcome.exit_code,
            ).with_context(project=project.name, output_tail=outcome.output[-500:])
            logger.error("run_failed", exit_code=outcome.exit_code)
        else:
            result.files = SnapshotCatalog(project.backup_root).mirror_file_count()
            logger.info(
                "run_completed",
                outcome=result.outcome.value,
                files=result.files,
                warnings=result.warnings,
                duration_s=round(result.duration_seconds, 2),
            )
        return result

    def _record_success(self, project: Project, result: RunResult) -> None:
        finished = result.finished_at or int(self._clock())
        self.state(project).record_backup(finished)
        if self.registry is not None:
            try:
                self.registry.update_last_backup(project.id, finished)
            except CheckpointError as exc:
                logger.warning("registry_update_failed", **exc.to_dict())

    def _publish_result(self, project: Project, result: RunResult) -> None:
        status = HeartbeatStatus.HEALTHY if result.succeeded else HeartbeatStatus.ERROR
        self.publisher.publish(
            status,
            project=project.name,
            last_backup=self.state(project).last_backup() or 0,
            last_backup_files=result.files,
            error=result.error.message if result.error else None,
        )

    def _skipped(
        self,
        project: Project,
        reason: SkipReason,
        error: CheckpointError | None = None,
    ) -> RunResult:
        return RunResult(
            project=project.name,
            outcome=RunOutcome.SKIPPED,
            skip_reason=reason,
            finished_at=int(self._clock()),
            error=error,
        )

    # === Retention ===

    def plan_retention(self, project: Project, now: datetime | None = None) -> PrunePlan:
        catalog = SnapshotCatalog(project.backup_root)
        policy = project.config.retention.policy()
        moment = now or datetime.fromtimestamp(self._clock()).astimezone()
        return policy.plan(catalog.prunable_entries(), moment)

    def _maybe_maintain(self, project: Project) -> None:
        every = project.config.cleanup_interval_cycles
        cycles = self.state(project).increment_cycles()
        if not every or cycles % every:
            return
        plan = self.plan_retention(project)
        if not plan.delete:
            return
        applied = apply_plan(plan)
        SnapshotCatalog(project.backup_root).remove_empty_dirs()
        logger.info("retention_maintenance", cycle=cycles, **applied.to_dict())
