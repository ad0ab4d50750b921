"""Project registry, single-project runs, watchers and global sweeps."""

from checkpoint.orchestrator.models import (
    Project,
    ProjectConfig,
    RetentionWindows,
    RunOutcome,
    RunResult,
    SkipReason,
    SweepSummary,
)
from checkpoint.orchestrator.pipeline import (
    CommandPipeline,
    ExecutionPipeline,
    PipelineResult,
    classify_outcome,
)
from checkpoint.orchestrator.registry import ProjectRegistry
from checkpoint.orchestrator.runner import ProjectRunner
from checkpoint.orchestrator.state import ProjectState
from checkpoint.orchestrator.sweep import GlobalOrchestrator
from checkpoint.orchestrator.watcher import ProjectWatcher

__all__ = [
    "CommandPipeline",
    "ExecutionPipeline",
    "GlobalOrchestrator",
    "PipelineResult",
    "Project",
    "ProjectConfig",
    "ProjectRegistry",
    "ProjectRunner",
    "ProjectState",
    "ProjectWatcher",
    "RetentionWindows",
    "RunOutcome",
    "RunResult",
    "SkipReason",
    "SweepSummary",
    "classify_outcome",
]
