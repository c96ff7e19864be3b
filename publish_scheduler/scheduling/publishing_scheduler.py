"""
Background publishing scheduler that publishes posts at their scheduled times.

``PublishingScheduler`` wires the pipeline together and drives it from a
:class:`~publish_scheduler.scheduling.clock.Clock`.  Every tick:

1. Fetches ``pending`` posts whose scheduled time has passed.
2. Resolves a credential for each post's owner (concurrently).
3. Fails posts without a credential immediately.
4. Classifies the rest by how overdue they are.
5. Dispatches every tier concurrently, each through the bounded batch
   runner and the publish executor.

Multiple scheduler instances may run against the same store.  Correctness
rests entirely on the conditional ``pending -> terminal`` update; there is
no distributed lock.
"""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from publish_scheduler.activity import ActivityLogger
from publish_scheduler.exceptions import StoreUnavailableError
from publish_scheduler.scheduling.batch_runner import BoundedBatchRunner
from publish_scheduler.scheduling.classifier import bucket_by_tier
from publish_scheduler.scheduling.clock import Clock
from publish_scheduler.scheduling.credentials import CredentialGate
from publish_scheduler.scheduling.dispatcher import TieredDispatcher
from publish_scheduler.scheduling.executor import NO_CREDENTIAL_MESSAGE, PublishExecutor
from publish_scheduler.scheduling.fetcher import DueJobFetcher
from publish_scheduler.scheduling.models import (
    JobResult,
    OverdueTier,
    TickReport,
    TierPolicy,
)
from publish_scheduler.scheduling.ports import (
    CredentialResolverPort,
    JobStorePort,
    PublisherPort,
)
from publish_scheduler.utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class PublishingScheduler:
    """Publishes scheduled posts at their designated times.

    All collaborators are injected; there is no module-level instance, so
    several schedulers can run side by side (in tests or in production).

    Args:
        store: Job store (``fetch_due_pending``, ``conditionally_update``).
        credential_resolver: Resolves a ``Credential`` per owner.
        publisher: External publishing API (async ``publish``).
        activity_logger: Audit trail.  Defaults to an in-memory
            ``ActivityLogger`` with no sink.
        check_interval_seconds: How often the clock ticks (default: 60).
        policies: Per-tier overrides of the default dispatch policies.
        runner: Batch runner shared by all tiers.
    """

    def __init__(
        self,
        store: JobStorePort,
        credential_resolver: CredentialResolverPort,
        publisher: PublisherPort,
        activity_logger: Optional[ActivityLogger] = None,
        check_interval_seconds: float = 60,
        policies: Optional[Dict[OverdueTier, TierPolicy]] = None,
        runner: Optional[BoundedBatchRunner] = None,
    ) -> None:
        self.check_interval_seconds = check_interval_seconds
        self.activity = activity_logger or ActivityLogger()

        self.fetcher = DueJobFetcher(store)
        self.gate = CredentialGate(credential_resolver)
        self.executor = PublishExecutor(store, publisher, self.activity)
        self.dispatcher = TieredDispatcher(self.executor, runner=runner, policies=policies)

        self._clock: Optional[Clock] = None
        self._tick_count: int = 0
        self.last_report: Optional[TickReport] = None

    # ================================================================
    # LIFECYCLE
    # ================================================================

    @property
    def is_running(self) -> bool:
        return self._clock is not None and self._clock.is_running

    @property
    def tick_count(self) -> int:
        return self._tick_count

    async def start(self) -> None:
        """Start ticking in the background.

        Returns immediately; the first tick fires right away.
        """
        if self.is_running:
            logger.info("[SCHEDULER] Publishing scheduler is already running")
            return

        self._clock = Clock(self.check_interval_seconds, self.run_tick, name="publishing-scheduler")
        self._clock.start()
        logger.info(
            "[SCHEDULER] Publishing scheduler started (interval=%ss)",
            self.check_interval_seconds,
        )

    async def stop(self) -> None:
        """Stop the scheduler.

        In-flight ticks run to completion and pending activity records are
        flushed before this returns.
        """
        logger.info("[SCHEDULER] Publishing scheduler stop requested")
        if self._clock is not None:
            await self._clock.stop()
            self._clock = None
        await self.activity.flush()
        logger.info("[SCHEDULER] Publishing scheduler stopped")

    async def trigger_now(self) -> TickReport:
        """Run exactly one tick and wait for it, including activity writes."""
        logger.info("[SCHEDULER] Manually triggering post publishing check")
        report = await self.run_tick()
        await self.activity.flush()
        return report

    # ================================================================
    # CORE TICK
    # ================================================================

    async def run_tick(self, now: Optional[datetime] = None) -> TickReport:
        """Fetch, gate, classify and dispatch all due posts.

        Args:
            now: Tick instant.  Defaults to the current UTC time.

        Returns:
            A ``TickReport``.  ``aborted`` is set when the store could not
            be queried; nothing changed state in that case.
        """
        now = ensure_utc(now) if now else utc_now()
        self._tick_count += 1
        report = TickReport(started_at=now)

        try:
            posts = await self.fetcher.fetch(now)
        except StoreUnavailableError as exc:
            logger.error("[SCHEDULER] Tick abandoned, job store unavailable: %s", exc)
            report.aborted = True
            report.finished_at = utc_now()
            self.last_report = report
            return report

        report.due_count = len(posts)
        if not posts:
            report.finished_at = utc_now()
            self.last_report = report
            return report

        with_credential, without_credential = await self.gate.split(posts)
        report.missing_credentials = len(without_credential)

        results: List[JobResult] = []
        if without_credential:
            results.extend(await asyncio.gather(*(
                self.executor.fail(post, NO_CREDENTIAL_MESSAGE, reason="no_credential")
                for post in without_credential
            )))

        if with_credential:
            buckets = bucket_by_tier(with_credential, now, lambda item: item[0].scheduled_at)
            report.tier_counts = {tier: len(items) for tier, items in buckets.items()}
            results.extend(await self.dispatcher.dispatch(buckets, now))

        report.results = results
        report.finished_at = utc_now()
        self.last_report = report

        logger.info(
            "[SCHEDULER] Tick complete: %d due, %d published, %d failed, %d already claimed, "
            "%d not finalized",
            report.due_count,
            report.published,
            report.failed,
            report.already_claimed,
            report.not_finalized,
        )
        return report


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "PublishingScheduler",
]
