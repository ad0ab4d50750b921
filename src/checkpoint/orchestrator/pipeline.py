"""Execution pipeline contract.

The copy/compress/encrypt/sync work happens in an external command. The
core only needs: run it in the project directory, pass ``--force`` to skip
its own interval gating, and read back the exit status.

Success with warnings:
    A pipeline may succeed while reporting warnings (e.g. cloud upload
    skipped). ``PipelineResult.warnings`` carries them as a structured
    field. ``CommandPipeline`` only fills it when a ``warning_marker`` is
    configured: output lines starting with the marker become warnings.
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

from checkpoint.core.errors import ExecutionFailedError
from checkpoint.core.logging import get_logger
from checkpoint.orchestrator.models import Project, RunOutcome

logger = get_logger(__name__)

# Keep the tail of the pipeline output for error reporting.
_OUTPUT_TAIL = 4000


@dataclass
class PipelineResult:
    exit_code: int
    warnings: list[str] = field(default_factory=list)
    output: str = ""
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


class ExecutionPipeline(Protocol):
    def run(self, project: Project, *, force: bool = False) -> PipelineResult: ...


def classify_outcome(result: PipelineResult) -> RunOutcome:
    if not result.succeeded:
        return RunOutcome.FAILED
    if result.warnings:
        return RunOutcome.BACKED_UP_WITH_WARNINGS
    return RunOutcome.BACKED_UP


class CommandPipeline:
    """Runs the backup command as a subprocess inside the project directory.

    The child gets ``CHECKPOINT_PROJECT_DIR``, ``CHECKPOINT_PROJECT_NAME`` and
    ``CHECKPOINT_BACKUP_DIR`` in its environment.

    Example:
        >>> pipeline = CommandPipeline(["backup-now"], warning_marker="WARNING:")
        >>> result = pipeline.run(project, force=True)
        >>> classify_outcome(result)
        <RunOutcome.BACKED_UP: 'backed_up'>
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        timeout: float | None = None,
        warning_marker: str | None = None,
        force_flag: str = "--force",
    ) -> None:
        if not command:
            raise ValueError("pipeline command must not be empty")
        self.command = list(command)
        self.timeout = timeout
        self.warning_marker = warning_marker
        self.force_flag = force_flag

    def run(self, project: Project, *, force: bool = False) -> PipelineResult:
        argv = [*self.command, *([self.force_flag] if force else [])]
        env = {
            **os.environ,
            "CHECKPOINT_PROJECT_DIR": str(project.path),
            "CHECKPOINT_PROJECT_NAME": project.name,
            "CHECKPOINT_BACKUP_DIR": str(project.backup_root),
        }
        started = time.monotonic()
        logger.info("pipeline_started", argv=argv, cwd=str(project.path))
        try:
            completed = subprocess.run(
                argv,
                cwd=project.path,
                env=env,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ExecutionFailedError(
                f"Pipeline timed out after {self.timeout}s", cause=exc
            ).with_context(project=project.name) from exc
        except OSError as exc:
            raise ExecutionFailedError(
                f"Pipeline could not be started: {exc}", cause=exc
            ).with_context(project=project.name) from exc

        output = (completed.stdout or "") + (completed.stderr or "")
        result = PipelineResult(
            exit_code=completed.returncode,
            warnings=self._warnings(output),
            output=output[-_OUTPUT_TAIL:],
            duration_seconds=time.monotonic() - started,
        )
        logger.info(
            "pipeline_finished",
            exit_code=result.exit_code,
            warnings=len(result.warnings),
            duration_s=round(result.duration_seconds, 2),
        )
        return result

    def _warnings(self, output: str) -> list[str]:
        if not self.warning_marker:
            return []
        return [
            line.strip()
            for line in output.splitlines()
            if line.strip().startswith(self.warning_marker)
        ]
