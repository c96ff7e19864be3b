"""
Operational helpers for an owner's overdue posts.

``OverdueManager`` gives operators three tools that sit beside the
automatic tick:

- ``analyze``: what the next tick would do with each pending post.
- ``reschedule_overdue``: move every overdue post into the future, spaced
  30 minutes apart.
- ``fail_critically_overdue``: fail everything older than seven days now.

All writes use the same conditional ``status = 'pending'`` update as the
scheduler, so they are safe to run while schedulers are ticking.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from publish_scheduler.activity import ActivityLogger, ActivityType
from publish_scheduler.exceptions import StoreUnavailableError, ValidationError
from publish_scheduler.scheduling.classifier import classify_overdue, format_overdue
from publish_scheduler.scheduling.executor import PublishExecutor
from publish_scheduler.scheduling.models import (
    JobResult,
    OverdueTier,
    PostStatus,
    ScheduledPost,
)
from publish_scheduler.scheduling.ports import JobStorePort
from publish_scheduler.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

RESCHEDULE_SPACING = timedelta(minutes=30)
CRITICAL_FAILURE_MESSAGE = "Marked as failed due to being critically overdue (>7 days)"

TIER_ACTIONS: Dict[OverdueTier, str] = {
    OverdueTier.ON_TIME: "Will publish automatically",
    OverdueTier.RECENTLY_OVERDUE: "Publishing with minor delay",
    OverdueTier.MODERATELY_OVERDUE: "Publishing with overdue notice",
    OverdueTier.SEVERELY_OVERDUE: "Attempting to publish with warning",
    OverdueTier.CRITICALLY_OVERDUE: "Will be marked as failed",
}


@dataclass
class OverdueDetail:
    """Per-post line of an ``OverdueAnalysis``."""

    post_id: str
    preview: str
    scheduled_at: datetime
    tier: OverdueTier
    overdue_text: str
    action: str


@dataclass
class OverdueAnalysis:
    """Tier counts and per-post details for one owner's pending posts."""

    owner_id: str
    generated_at: datetime
    counts: Dict[OverdueTier, int] = field(
        default_factory=lambda: {tier: 0 for tier in OverdueTier}
    )
    details: List[OverdueDetail] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.details)

    def to_readable(self) -> str:
        """Plain-text summary for operators."""
        if not self.details:
            return "No pending scheduled posts found. All posts are up to date!"

        lines = [
            "Scheduled Posts Analysis",
            "",
            f"Total pending posts: {self.total}",
            f"On time: {self.counts[OverdueTier.ON_TIME]}",
            f"Recently overdue (5min-1hr): {self.counts[OverdueTier.RECENTLY_OVERDUE]}",
            f"Moderately overdue (1-24hr): {self.counts[OverdueTier.MODERATELY_OVERDUE]}",
            f"Severely overdue (1-7 days): {self.counts[OverdueTier.SEVERELY_OVERDUE]}",
            f"Critically overdue (>7 days): {self.counts[OverdueTier.CRITICALLY_OVERDUE]}",
            "",
            "Post Details:",
        ]
        for index, detail in enumerate(self.details, start=1):
            lines.extend([
                f"{index}. {detail.tier.label}",
                f"   ID: {detail.post_id}",
                f"   Content: {detail.preview}",
                f"   Scheduled: {detail.scheduled_at.isoformat()}",
                f"   Status: {detail.overdue_text}",
                f"   Action: {detail.action}",
            ])
        return "\n".join(lines)


@dataclass
class ReschedulePlan:
    """One post moved by ``reschedule_overdue``."""

    post_id: str
    preview: str
    old_time: datetime
    new_time: datetime


class OverdueManager:
    """Inspect and clean up overdue posts for a single owner.

    Args:
        store: Job store with ``fetch_pending_for_owner`` and
            ``conditionally_update``.
        executor: Used to fail posts with the standard bookkeeping.
        activity: Audit trail for reschedules.
    """

    def __init__(
        self,
        store: JobStorePort,
        executor: PublishExecutor,
        activity: ActivityLogger,
    ) -> None:
        self.store = store
        self.executor = executor
        self.activity = activity

    async def _pending_posts(self, owner_id: str) -> List[ScheduledPost]:
        try:
            rows = await self.store.fetch_pending_for_owner(owner_id)
        except Exception as exc:
            raise StoreUnavailableError(
                f"Fetching pending posts for owner {owner_id} failed: {exc}"
            ) from exc
        posts = [ScheduledPost.from_row(row) for row in rows or []]
        posts = [p for p in posts if p.status is PostStatus.PENDING]
        posts.sort(key=lambda p: p.scheduled_at)
        return posts

    # ================================================================
    # ANALYSIS
    # ================================================================

    async def analyze(self, owner_id: str, now: Optional[datetime] = None) -> OverdueAnalysis:
        """Classify every pending post of *owner_id*.

        Raises:
            StoreUnavailableError: If the store query fails.
        """
        now = ensure_utc(now) if now else utc_now()
        analysis = OverdueAnalysis(owner_id=owner_id, generated_at=now)

        for post in await self._pending_posts(owner_id):
            tier = classify_overdue(now, post.scheduled_at)
            analysis.counts[tier] += 1
            analysis.details.append(OverdueDetail(
                post_id=post.id,
                preview=post.preview(),
                scheduled_at=post.scheduled_at,
                tier=tier,
                overdue_text=(
                    format_overdue(now, post.scheduled_at)
                    if post.scheduled_at < now else "Due now"
                ),
                action=TIER_ACTIONS[tier],
            ))
        return analysis

    # ================================================================
    # RESCHEDULING
    # ================================================================

    async def reschedule_overdue(
        self,
        owner_id: str,
        hours_from_now: float = 1,
        now: Optional[datetime] = None,
    ) -> List[ReschedulePlan]:
        """Move every overdue pending post into the future.

        The i-th overdue post (oldest first) gets
        ``now + hours_from_now + i * 30 minutes``.  Posts that another actor
        finalized in the meantime are left out of the result.

        Raises:
            ValidationError: If *hours_from_now* is not positive.
            StoreUnavailableError: If the store query fails.
        """
        if hours_from_now <= 0:
            raise ValidationError(f"hours_from_now must be positive, got {hours_from_now}")
        now = ensure_utc(now) if now else utc_now()

        overdue = [p for p in await self._pending_posts(owner_id) if p.scheduled_at < now]
        plans: List[ReschedulePlan] = []
        for index, post in enumerate(overdue):
            new_time = now + timedelta(hours=hours_from_now) + index * RESCHEDULE_SPACING
            try:
                affected = await self.store.conditionally_update(
                    post.id,
                    PostStatus.PENDING,
                    {"scheduled_at": new_time, "updated_at": utc_now()},
                )
            except Exception as exc:
                logger.error("[OVERDUE] Failed to reschedule post %s: %s", post.id, exc)
                continue
            if not affected:
                logger.info("[OVERDUE] Post %s no longer pending, not rescheduled", post.id)
                continue

            plans.append(ReschedulePlan(
                post_id=post.id,
                preview=post.preview(),
                old_time=post.scheduled_at,
                new_time=new_time,
            ))
            self.activity.record(
                owner_id,
                ActivityType.SCHEDULED_POST_RESCHEDULED,
                f"Overdue post rescheduled to {new_time.isoformat()}: {post.preview()}",
                {
                    "scheduled_post_id": post.id,
                    "old_scheduled_time": post.scheduled_at.isoformat(),
                    "new_scheduled_time": new_time.isoformat(),
                },
            )

        logger.info(
            "[OVERDUE] Rescheduled %d of %d overdue posts for owner %s",
            len(plans),
            len(overdue),
            owner_id,
        )
        return plans

    # ================================================================
    # BULK FAILURE
    # ================================================================

    async def fail_critically_overdue(
        self,
        owner_id: str,
        now: Optional[datetime] = None,
    ) -> List[JobResult]:
        """Fail every pending post of *owner_id* that is more than 7 days late.

        Raises:
            StoreUnavailableError: If the store query fails.
        """
        now = ensure_utc(now) if now else utc_now()
        critical = [
            p for p in await self._pending_posts(owner_id)
            if classify_overdue(now, p.scheduled_at) is OverdueTier.CRITICALLY_OVERDUE
        ]
        results: List[JobResult] = []
        for post in critical:
            results.append(await self.executor.fail(
                post,
                CRITICAL_FAILURE_MESSAGE,
                tier=OverdueTier.CRITICALLY_OVERDUE,
                reason="critically_overdue_manual",
            ))
        return results


__all__ = [
    "CRITICAL_FAILURE_MESSAGE",
    "RESCHEDULE_SPACING",
    "TIER_ACTIONS",
    "OverdueDetail",
    "OverdueAnalysis",
    "ReschedulePlan",
    "OverdueManager",
]
