"""Retention tiers.

A tier owns one age range ``[previous tier's window, window)`` and decides
what survives inside it: everything (``ALL``) or one representative per
calendar bucket (``ONE_REPRESENTATIVE``).

Default ladder::

    age  0h ──── 24h ──── 7d ──────── 28d ──────────── 365d ────────►
         │ hourly  │ daily  │  weekly    │   monthly      │  expired
         │ keep all│ 1/day  │ 1/ISO week │  1/month       │  delete
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from checkpoint.core.errors import RetentionConfigError


class Granularity(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class KeepPolicy(str, Enum):
    ALL = "all"
    ONE_REPRESENTATIVE = "one_representative"


def bucket_key(timestamp: datetime, granularity: Granularity) -> str:
    """Calendar bucket of ``timestamp`` at ``granularity`` (in its own timezone)."""
    if granularity is Granularity.HOUR:
        return timestamp.strftime("%Y-%m-%dT%H")
    if granularity is Granularity.DAY:
        return timestamp.strftime("%Y-%m-%d")
    if granularity is Granularity.WEEK:
        year, week, _ = timestamp.isocalendar()
        return f"{year}-W{week:02d}"
    return timestamp.strftime("%Y-%m")


@dataclass(frozen=True)
class RetentionTier:
    """One age window and its keep policy."""

    name: str
    granularity: Granularity
    window: timedelta
    keep_policy: KeepPolicy

    def bucket(self, timestamp: datetime) -> str:
        return bucket_key(timestamp, self.granularity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "granularity": self.granularity.value,
            "window_seconds": int(self.window.total_seconds()),
            "keep_policy": self.keep_policy.value,
        }


def build_tiers(
    hourly_hours: int = 24,
    daily_days: int = 7,
    weekly_weeks: int = 4,
    monthly_months: int = 12,
) -> tuple[RetentionTier, ...]:
    """Standard four-tier ladder with configurable windows.

    Raises:
        RetentionConfigError: windows are not strictly increasing
    """
    tiers = (
        RetentionTier("hourly", Granularity.HOUR, timedelta(hours=hourly_hours), KeepPolicy.ALL),
        RetentionTier(
            "daily", Granularity.DAY, timedelta(days=daily_days), KeepPolicy.ONE_REPRESENTATIVE
        ),
        RetentionTier(
            "weekly", Granularity.WEEK, timedelta(weeks=weekly_weeks), KeepPolicy.ONE_REPRESENTATIVE
        ),
        RetentionTier(
            "monthly",
            Granularity.MONTH,
            timedelta(days=round(monthly_months * 365 / 12)),
            KeepPolicy.ONE_REPRESENTATIVE,
        ),
    )
    validate_tiers(tiers)
    return tiers


def validate_tiers(tiers: tuple[RetentionTier, ...]) -> None:
    if not tiers:
        raise RetentionConfigError("At least one retention tier is required")
    previous = timedelta(0)
    for tier in tiers:
        if tier.window <= previous:
            raise RetentionConfigError(
                f"Tier {tier.name!r} window {tier.window} must exceed the previous window {previous}"
            ).with_context(tier=tier.name)
        previous = tier.window
    names = [tier.name for tier in tiers]
    if len(set(names)) != len(names):
        raise RetentionConfigError(f"Duplicate tier names: {names}")


DEFAULT_TIERS = build_tiers()
