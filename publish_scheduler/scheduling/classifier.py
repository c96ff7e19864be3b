"""
Overdue classification for due posts.

Everything here is a pure function of ``now`` and a post's scheduled time.
Tiers are recomputed on every tick and never persisted.

Thresholds (whole minutes overdue, rounded down):
    > 10080 (7 days)   -> CRITICALLY_OVERDUE
    > 1440  (1 day)    -> SEVERELY_OVERDUE
    > 60    (1 hour)   -> MODERATELY_OVERDUE
    > 5                -> RECENTLY_OVERDUE
    otherwise          -> ON_TIME (including negative values from clock skew)
"""

import math
from datetime import datetime
from typing import Callable, Dict, Iterable, List, TypeVar

from publish_scheduler.scheduling.models import OverdueTier
from publish_scheduler.utils import ensure_utc

T = TypeVar("T")

MINUTES_PER_HOUR: int = 60
MINUTES_PER_DAY: int = 24 * MINUTES_PER_HOUR

CRITICAL_THRESHOLD_MINUTES: int = 7 * MINUTES_PER_DAY
SEVERE_THRESHOLD_MINUTES: int = MINUTES_PER_DAY
MODERATE_THRESHOLD_MINUTES: int = MINUTES_PER_HOUR
RECENT_THRESHOLD_MINUTES: int = 5


def overdue_minutes(now: datetime, scheduled_at: datetime) -> int:
    """Whole minutes between *scheduled_at* and *now*, rounded down.

    Negative when the post is not yet due.
    """
    delta = ensure_utc(now) - ensure_utc(scheduled_at)
    return math.floor(delta.total_seconds() / 60)


def classify_overdue(now: datetime, scheduled_at: datetime) -> OverdueTier:
    """Bucket a post by how late it is.

    Args:
        now: Current instant of the tick.
        scheduled_at: When the post was meant to go out.

    Returns:
        The ``OverdueTier`` for this post.  Never raises for any pair of
        datetimes; posts fetched slightly early are ``ON_TIME``.
    """
    minutes = overdue_minutes(now, scheduled_at)

    if minutes > CRITICAL_THRESHOLD_MINUTES:
        return OverdueTier.CRITICALLY_OVERDUE
    if minutes > SEVERE_THRESHOLD_MINUTES:
        return OverdueTier.SEVERELY_OVERDUE
    if minutes > MODERATE_THRESHOLD_MINUTES:
        return OverdueTier.MODERATELY_OVERDUE
    if minutes > RECENT_THRESHOLD_MINUTES:
        return OverdueTier.RECENTLY_OVERDUE
    return OverdueTier.ON_TIME


def format_overdue(now: datetime, scheduled_at: datetime) -> str:
    """Human-readable lateness, using the largest whole unit.

    Examples: ``"9 days overdue"``, ``"1 hour overdue"``,
    ``"0 minutes overdue"``.
    """
    minutes = max(overdue_minutes(now, scheduled_at), 0)
    hours = minutes // MINUTES_PER_HOUR
    days = hours // 24

    if days > 0:
        return f"{days} day{'s' if days != 1 else ''} overdue"
    if hours > 0:
        return f"{hours} hour{'s' if hours != 1 else ''} overdue"
    return f"{minutes} minute{'s' if minutes != 1 else ''} overdue"


def bucket_by_tier(
    items: Iterable[T],
    now: datetime,
    scheduled_at: Callable[[T], datetime],
) -> Dict[OverdueTier, List[T]]:
    """Split *items* into tiers.

    Every tier key is present in the result, possibly with an empty list.
    Input order is preserved inside each bucket.

    Args:
        items: Anything carrying a scheduled time.
        now: Current instant of the tick.
        scheduled_at: Extracts the scheduled time from an item.
    """
    buckets: Dict[OverdueTier, List[T]] = {tier: [] for tier in OverdueTier}
    for item in items:
        buckets[classify_overdue(now, scheduled_at(item))].append(item)
    return buckets


__all__ = [
    "CRITICAL_THRESHOLD_MINUTES",
    "SEVERE_THRESHOLD_MINUTES",
    "MODERATE_THRESHOLD_MINUTES",
    "RECENT_THRESHOLD_MINUTES",
    "overdue_minutes",
    "classify_overdue",
    "format_overdue",
    "bucket_by_tier",
]
