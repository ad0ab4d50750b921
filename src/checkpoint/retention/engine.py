"""
Tiered snapshot retention.

Pure computation over Snapshot Entries: which tier each entry's age falls
into, which entries survive, and how many bytes pruning would free. Nothing
here touches the filesystem except ``apply_plan``, which must be called
explicitly with a plan the caller has already inspected.

Manifesto:
    Old snapshots should thin out gracefully, not fall off a cliff. Recent
    history is kept in full; older history keeps one representative per
    day, then per week, then per month; anything older than the last window
    is a deletion candidate.

    - **Pure planning:** ``plan_prune`` never deletes
    - **Deterministic:** The representative of a bucket is its earliest entry
    - **Convergent:** Re-planning a pruned set deletes nothing more
    - **Typed results:** Callers get RetentionStats / PrunePlan, never text

Architecture:
    ::

        entries ──► sort by (timestamp, relative_path, location)
                      │
                      ▼
                 classify(age) ──► expired ─────────────────► delete
                      │
                      ├─ keep-all tier ─────────────────────► keep
                      │
                      └─ keep-one tier ─► bucket (day / ISO week / month)
                                          [+ relative_path when PER_PATH]
                                             │
                                   first in bucket? ── yes ─► keep
                                             └──────── no ──► delete

Examples:
    >>> plan = plan_prune(entries, now=datetime.now().astimezone())
    >>> plan.freed_bytes
    1048576
    >>> result = apply_plan(plan)      # explicit, separate step

Tags:
    retention, pruning, snapshots, checkpoint
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from checkpoint.core.logging import get_logger
from checkpoint.retention.tiers import DEFAULT_TIERS, KeepPolicy, RetentionTier

logger = get_logger(__name__)

EXPIRED = "expired"


class Generation(str, Enum):
    MIRROR = "mirror"       # always-latest copy
    ARCHIVED = "archived"   # historical copy under retention
    CURRENT = "current"     # synthetic: the live working copy


class RetentionScope(str, Enum):
    GLOBAL = "global"       # one bucket space for every path
    PER_PATH = "per_path"   # buckets are per relative path


@dataclass(frozen=True)
class SnapshotEntry:
    """One captured version of one file."""

    relative_path: str
    timestamp: datetime
    size: int = 0
    location: Path | None = None
    generation: Generation = Generation.ARCHIVED

    def sort_key(self) -> tuple[datetime, str, str]:
        return (self.timestamp, self.relative_path, str(self.location or ""))


@dataclass(frozen=True)
class RetentionDecision:
    entry: SnapshotEntry
    tier: str
    keep: bool
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "relative_path": self.entry.relative_path,
            "timestamp": self.entry.timestamp.isoformat(),
            "size": self.entry.size,
            "location": str(self.entry.location) if self.entry.location else None,
            "tier": self.tier,
            "keep": self.keep,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class RetentionStats:
    """Entry counts per tier."""

    hourly: int = 0
    daily: int = 0
    weekly: int = 0
    monthly: int = 0
    expired: int = 0

    @property
    def total(self) -> int:
        return self.hourly + self.daily + self.weekly + self.monthly + self.expired

    def to_dict(self) -> dict[str, int]:
        return {
            "hourly": self.hourly,
            "daily": self.daily,
            "weekly": self.weekly,
            "monthly": self.monthly,
        }

    @classmethod
    def from_counts(cls, counts: dict[str, int]) -> RetentionStats:
        return cls(
            hourly=counts.get("hourly", 0),
            daily=counts.get("daily", 0),
            weekly=counts.get("weekly", 0),
            monthly=counts.get("monthly", 0),
            expired=counts.get(EXPIRED, 0),
        )


@dataclass(frozen=True)
class PrunePlan:
    """Preview of a prune: what stays, what goes, and why."""

    keep: tuple[RetentionDecision, ...]
    delete: tuple[RetentionDecision, ...]
    computed_at: datetime

    @property
    def freed_bytes(self) -> int:
        return sum(decision.entry.size for decision in self.delete)

    def partition(self) -> tuple[frozenset[tuple], frozenset[tuple]]:
        """Keep/delete sets of entry sort keys, for comparing plans."""
        return (
            frozenset(d.entry.sort_key() for d in self.keep),
            frozenset(d.entry.sort_key() for d in self.delete),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "computed_at": self.computed_at.isoformat(),
            "keep_count": len(self.keep),
            "delete_count": len(self.delete),
            "freed_bytes": self.freed_bytes,
            "delete": [d.to_dict() for d in self.delete],
        }


@dataclass
class ApplyResult:
    deleted: list[Path] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    freed_bytes: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "deleted": len(self.deleted),
            "failed": dict(self.failed),
            "freed_bytes": self.freed_bytes,
        }


def _align(timestamp: datetime, now: datetime) -> datetime:
    """Express ``timestamp`` in ``now``'s timezone; naive values are local time."""
    if now.tzinfo is None:
        return timestamp if timestamp.tzinfo is None else timestamp.astimezone().replace(tzinfo=None)
    return timestamp.astimezone(now.tzinfo)


class RetentionPolicy:
    """A tier ladder plus a bucketing scope.

    Example:
        >>> policy = RetentionPolicy(build_tiers(daily_days=14), RetentionScope.PER_PATH)
        >>> policy.classify(entry.timestamp, now).name
        'daily'
    """

    def __init__(
        self,
        tiers: tuple[RetentionTier, ...] = DEFAULT_TIERS,
        scope: RetentionScope = RetentionScope.GLOBAL,
    ) -> None:
        self.tiers = tiers
        self.scope = scope

    def classify(self, timestamp: datetime, now: datetime) -> RetentionTier | None:
        """Tier whose window contains the age of ``timestamp``; None when expired."""
        age = now - _align(timestamp, now)
        if age < timedelta(0):
            age = timedelta(0)
        for tier in self.tiers:
            if age < tier.window:
                return tier
        return None

    def stats(self, entries: Iterable[SnapshotEntry], now: datetime) -> RetentionStats:
        counts: Counter[str] = Counter()
        for entry in entries:
            tier = self.classify(entry.timestamp, now)
            counts[tier.name if tier else EXPIRED] += 1
        return RetentionStats.from_counts(counts)

    def plan(self, entries: Iterable[SnapshotEntry], now: datetime) -> PrunePlan:
        keep: list[RetentionDecision] = []
        delete: list[RetentionDecision] = []
        seen_buckets: set[tuple[str, ...]] = set()

        for entry in sorted(entries, key=SnapshotEntry.sort_key):
            if entry.generation is not Generation.ARCHIVED:
                keep.append(RetentionDecision(entry, entry.generation.value, True, "not_archived"))
                continue

            tier = self.classify(entry.timestamp, now)
            if tier is None:
                delete.append(RetentionDecision(entry, EXPIRED, False, "outside_all_windows"))
                continue
            if tier.keep_policy is KeepPolicy.ALL:
                keep.append(RetentionDecision(entry, tier.name, True, "keep_all"))
                continue

            key: tuple[str, ...] = (tier.name, tier.bucket(_align(entry.timestamp, now)))
            if self.scope is RetentionScope.PER_PATH:
                key = (*key, entry.relative_path)
            if key in seen_buckets:
                delete.append(RetentionDecision(entry, tier.name, False, f"superseded:{key[1]}"))
            else:
                seen_buckets.add(key)
                keep.append(RetentionDecision(entry, tier.name, True, f"representative:{key[1]}"))

        return PrunePlan(keep=tuple(keep), delete=tuple(delete), computed_at=now)


def compute_stats(
    entries: Iterable[SnapshotEntry],
    now: datetime,
    tiers: tuple[RetentionTier, ...] = DEFAULT_TIERS,
) -> RetentionStats:
    """Per-tier entry counts."""
    return RetentionPolicy(tiers).stats(entries, now)


def plan_prune(
    entries: Iterable[SnapshotEntry],
    now: datetime,
    tiers: tuple[RetentionTier, ...] = DEFAULT_TIERS,
    scope: RetentionScope = RetentionScope.GLOBAL,
) -> PrunePlan:
    """Keep/delete partition of ``entries``. Never deletes anything."""
    return RetentionPolicy(tiers, scope).plan(entries, now)


def _unlink(path: Path) -> None:
    path.unlink(missing_ok=True)


def apply_plan(
    plan: PrunePlan,
    *,
    remover: Callable[[Path], None] | None = None,
) -> ApplyResult:
    """Delete every entry the plan marks for deletion.

    Per-file failures are collected in ``ApplyResult.failed``; the remaining
    deletions still run.
    """
    remove = remover or _unlink
    result = ApplyResult()
    for decision in plan.delete:
        location = decision.entry.location
        if location is None:
            result.failed[decision.entry.relative_path] = "no location"
            continue
        try:
            remove(location)
        except OSError as exc:
            logger.warning("retention_delete_failed", path=str(location), error=str(exc))
            result.failed[str(location)] = str(exc)
            continue
        result.deleted.append(location)
        result.freed_bytes += decision.entry.size
    logger.info(
        "retention_applied",
        deleted=len(result.deleted),
        failed=len(result.failed),
        freed_bytes=result.freed_bytes,
    )
    return result
