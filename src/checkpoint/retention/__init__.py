"""Tiered snapshot retention, version history and the on-disk catalog."""

from checkpoint.retention.catalog import SnapshotCatalog
from checkpoint.retention.engine import (
    EXPIRED,
    ApplyResult,
    Generation,
    PrunePlan,
    RetentionDecision,
    RetentionPolicy,
    RetentionScope,
    RetentionStats,
    SnapshotEntry,
    apply_plan,
    compute_stats,
    plan_prune,
)
from checkpoint.retention.history import CURRENT_LABEL, VersionEntry, version_history
from checkpoint.retention.tiers import (
    DEFAULT_TIERS,
    Granularity,
    KeepPolicy,
    RetentionTier,
    build_tiers,
)

__all__ = [
    "ApplyResult",
    "CURRENT_LABEL",
    "DEFAULT_TIERS",
    "EXPIRED",
    "Generation",
    "Granularity",
    "KeepPolicy",
    "PrunePlan",
    "RetentionDecision",
    "RetentionPolicy",
    "RetentionScope",
    "RetentionStats",
    "RetentionTier",
    "SnapshotCatalog",
    "SnapshotEntry",
    "VersionEntry",
    "apply_plan",
    "build_tiers",
    "compute_stats",
    "plan_prune",
    "version_history",
]
