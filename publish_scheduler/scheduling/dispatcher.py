"""
Tiered dispatcher: one fixed policy per overdue tier.

| Tier               | Policy                                         | (c, d)      |
|--------------------|------------------------------------------------|-------------|
| CRITICALLY_OVERDUE | never published, marked failed                 | (5, 0ms)    |
| SEVERELY_OVERDUE   | published with delay note, low priority        | (1, 1000ms) |
| MODERATELY_OVERDUE | published with delay note                      | (2, 1000ms) |
| RECENTLY_OVERDUE   | published as is                                | (2, 750ms)  |
| ON_TIME            | published as is, highest concurrency           | (3, 500ms)  |

All tiers run concurrently; none waits for another.  Very old posts are
presumed unwanted and are not published days late.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from publish_scheduler.scheduling.batch_runner import BoundedBatchRunner
from publish_scheduler.scheduling.classifier import format_overdue
from publish_scheduler.scheduling.executor import PublishExecutor
from publish_scheduler.scheduling.models import (
    Credential,
    JobResult,
    OverdueTier,
    ScheduledPost,
    TierPolicy,
)
from publish_scheduler.utils import utc_now

logger = logging.getLogger(__name__)

Dispatchable = Tuple[ScheduledPost, Credential]

TIER_DESCRIPTIONS: Dict[OverdueTier, str] = {
    OverdueTier.CRITICALLY_OVERDUE: "CRITICAL: %d posts are critically overdue (>7 days)",
    OverdueTier.SEVERELY_OVERDUE: "SEVERE: %d posts are severely overdue (1-7 days)",
    OverdueTier.MODERATELY_OVERDUE: "MODERATE: %d posts are moderately overdue (1-24 hours)",
    OverdueTier.RECENTLY_OVERDUE: "RECENT: %d posts are recently overdue (5min-1hr)",
    OverdueTier.ON_TIME: "ON-TIME: %d posts are due now",
}


def default_tier_policies() -> Dict[OverdueTier, TierPolicy]:
    """Fresh copy of the default dispatch policies."""
    return {
        OverdueTier.CRITICALLY_OVERDUE: TierPolicy(
            publish=False, annotate=False, concurrency=5, delay_ms=0, priority="low",
        ),
        OverdueTier.SEVERELY_OVERDUE: TierPolicy(
            publish=True, annotate=True, concurrency=1, delay_ms=1000, priority="low",
        ),
        OverdueTier.MODERATELY_OVERDUE: TierPolicy(
            publish=True, annotate=True, concurrency=2, delay_ms=1000, priority="normal",
        ),
        OverdueTier.RECENTLY_OVERDUE: TierPolicy(
            publish=True, annotate=False, concurrency=2, delay_ms=750, priority="normal",
        ),
        OverdueTier.ON_TIME: TierPolicy(
            publish=True, annotate=False, concurrency=3, delay_ms=500, priority="high",
        ),
    }


def critical_failure_message(overdue_text: str) -> str:
    """Error message stored on a critically overdue post."""
    return (
        f"Post was critically overdue ({overdue_text}) and automatically "
        "marked as failed. Please reschedule if still needed."
    )


def group_by_owner(items: Sequence[Dispatchable]) -> List[Dispatchable]:
    """Order items owner by owner.

    Owners keep their first-appearance order and each owner's posts keep
    their scheduled order.
    """
    by_owner: Dict[str, List[Dispatchable]] = {}
    for item in items:
        by_owner.setdefault(item[0].owner_id, []).append(item)
    return [item for owner_items in by_owner.values() for item in owner_items]


class TieredDispatcher:
    """Applies each tier's policy through the bounded batch runner.

    Args:
        executor: Publishes and finalizes single posts.
        runner: Batch runner; a default ``BoundedBatchRunner`` when omitted.
        policies: Per-tier policies; ``default_tier_policies()`` when omitted.
    """

    def __init__(
        self,
        executor: PublishExecutor,
        runner: Optional[BoundedBatchRunner] = None,
        policies: Optional[Dict[OverdueTier, TierPolicy]] = None,
    ) -> None:
        self.executor = executor
        self.runner = runner or BoundedBatchRunner()
        self.policies = default_tier_policies()
        if policies:
            self.policies.update(policies)

    async def dispatch(
        self,
        buckets: Dict[OverdueTier, List[Dispatchable]],
        now: Optional[datetime] = None,
    ) -> List[JobResult]:
        """Dispatch every tier concurrently and collect all results.

        Args:
            buckets: ``(post, credential)`` pairs per tier.
            now: Tick instant; used for overdue texts.

        Returns:
            One ``JobResult`` per dispatched post.  Order across tiers is
            unspecified.
        """
        now = now or utc_now()
        tiers = list(OverdueTier)
        settled = await asyncio.gather(
            *(self._dispatch_tier(tier, buckets.get(tier, []), now) for tier in tiers),
            return_exceptions=True,
        )

        results: List[JobResult] = []
        for tier, outcome in zip(tiers, settled):
            if isinstance(outcome, BaseException):
                logger.error("[DISPATCH] Tier %s handler failed: %s", tier.value, outcome)
                results.extend(await self._fail_tier(tier, buckets.get(tier, []), outcome))
                continue
            results.extend(outcome)
        return results

    async def _fail_tier(
        self,
        tier: OverdueTier,
        items: Sequence[Dispatchable],
        error: BaseException,
    ) -> List[JobResult]:
        """Settle every post of a tier whose handler raised.

        Posts the handler already finalized come back as ``ALREADY_CLAIMED``.
        """
        message = f"Dispatch of tier {tier.value} failed: {error}"
        settled = await asyncio.gather(
            *(self.executor.fail(post, message, tier=tier, reason="dispatch_error")
              for post, _ in items),
            return_exceptions=True,
        )
        return [outcome for outcome in settled if not isinstance(outcome, BaseException)]

    async def _dispatch_tier(
        self,
        tier: OverdueTier,
        items: Sequence[Dispatchable],
        now: datetime,
    ) -> List[JobResult]:
        if not items:
            return []

        policy = self.policies[tier]
        logger.info("[DISPATCH] " + TIER_DESCRIPTIONS[tier], len(items))

        ordered = group_by_owner(items)

        async def worker(item: Dispatchable) -> JobResult:
            post, credential = item
            if not policy.publish:
                overdue_text = format_overdue(now, post.scheduled_at)
                return await self.executor.fail(
                    post,
                    critical_failure_message(overdue_text),
                    tier=tier,
                    reason=tier.value,
                )
            return await self.executor.execute(post, credential, tier, policy, now)

        raw = await self.runner.run(
            ordered,
            worker,
            policy.concurrency,
            policy.delay_ms,
            label=tier.value,
        )

        results: List[JobResult] = []
        for (post, _), outcome in zip(ordered, raw):
            if isinstance(outcome, BaseException):
                outcome = await self.executor.fail(
                    post,
                    str(outcome) or type(outcome).__name__,
                    tier=tier,
                    reason="dispatch_error",
                )
            results.append(outcome)
        return results


__all__ = [
    "TIER_DESCRIPTIONS",
    "default_tier_policies",
    "critical_failure_message",
    "group_by_owner",
    "TieredDispatcher",
]
