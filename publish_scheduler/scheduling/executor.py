"""
Publish executor: publish one post and settle its terminal status.

Order of operations for a single post:
1. Build the content (with the delay annotation when the tier asks for it).
2. Call the publisher.
3. Conditionally move the post ``pending -> published`` (or ``pending ->
   failed`` when the publisher raised).  Zero affected rows means another
   scheduler instance already finalized the post; that is a silent no-op.
4. Emit exactly one activity record.

The publisher is called *before* the post is claimed, so two racing
instances can both publish externally while only one status write wins.
Publishing is at-least-once at the API level; the bookkeeping is
exactly-once.  See DESIGN.md.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from publish_scheduler.activity import ActivityLogger, ActivityType
from publish_scheduler.exceptions import (
    AlreadyClaimedError,
    PublishRejectedError,
    StoreUnavailableError,
)
from publish_scheduler.scheduling.classifier import format_overdue
from publish_scheduler.scheduling.models import (
    Credential,
    DispatchOutcome,
    JobResult,
    OverdueTier,
    PostStatus,
    ScheduledPost,
    TierPolicy,
)
from publish_scheduler.scheduling.ports import JobStorePort, PublisherPort
from publish_scheduler.utils import utc_now

logger = logging.getLogger(__name__)

NO_CREDENTIAL_MESSAGE = "no valid credential found for owner"
UNKNOWN_PUBLISHED_ID = "unknown"


def annotate_content(content: str, overdue_text: str) -> str:
    """Append the delay note shown to readers of a late post."""
    return f"{content}\n\n⏰ Note: This post was scheduled earlier but was {overdue_text}."


def describe_publish_error(exc: BaseException) -> str:
    """The message stored on a post whose publish attempt raised."""
    if isinstance(exc, PublishRejectedError):
        return exc.message
    return str(exc) or type(exc).__name__


class PublishExecutor:
    """Publishes a single post and records the outcome.

    Never raises: every failure is converted into a ``JobResult`` with
    outcome ``FAILED`` (or ``ALREADY_CLAIMED``) plus an activity record.

    Args:
        store: Job store with ``conditionally_update``.
        publisher: Object with async ``publish(content, credential)``.
        activity: Activity logger for the audit trail.
    """

    def __init__(
        self,
        store: JobStorePort,
        publisher: PublisherPort,
        activity: ActivityLogger,
    ) -> None:
        self.store = store
        self.publisher = publisher
        self.activity = activity

    # ================================================================
    # PUBLISH PATH
    # ================================================================

    async def execute(
        self,
        post: ScheduledPost,
        credential: Optional[Credential],
        tier: OverdueTier,
        policy: TierPolicy,
        now: Optional[datetime] = None,
    ) -> JobResult:
        """Publish *post* and settle its status.

        Args:
            post: A ``pending`` post.
            credential: Credential resolved for ``post.owner_id``.
            tier: The post's overdue tier for this tick.
            policy: Dispatch policy of that tier.
            now: Tick instant used for the overdue text.

        Returns:
            The ``JobResult`` for this post.
        """
        now = now or utc_now()
        overdue_text = format_overdue(now, post.scheduled_at)

        if credential is None:
            return await self.fail(post, NO_CREDENTIAL_MESSAGE, tier=tier, reason="no_credential")

        content = post.content
        if policy.annotate:
            content = annotate_content(post.content, overdue_text)

        logger.info(
            "[EXECUTOR] Publishing post %s for owner %s (%s, priority=%s)",
            post.id,
            post.owner_id,
            overdue_text,
            policy.priority,
        )

        try:
            published_id = await self.publisher.publish(content, credential)
        except Exception as exc:
            message = describe_publish_error(exc)
            logger.error("[EXECUTOR] Failed to publish post %s: %s", post.id, message)
            if tier is OverdueTier.SEVERELY_OVERDUE:
                message = f"Severely overdue post ({overdue_text}) failed to publish: {message}"
            return await self.fail(post, message, tier=tier, reason="publish_error")

        published_id = str(published_id) if published_id else UNKNOWN_PUBLISHED_ID
        finished = utc_now()

        try:
            await self._transition(post, {
                "status": PostStatus.PUBLISHED,
                "published_id": published_id,
                "published_at": finished,
                "updated_at": finished,
            })
        except AlreadyClaimedError:
            logger.info(
                "[EXECUTOR] Post %s was already processed by another instance, "
                "discarding published id %s",
                post.id,
                published_id,
            )
            return self._already_claimed(post, tier, discarded_published_id=published_id)
        except StoreUnavailableError as exc:
            return self._store_failure(post, tier, exc, published_id=published_id)

        post.status = PostStatus.PUBLISHED
        post.published_id = published_id
        post.published_at = finished
        post.updated_at = finished

        if tier is OverdueTier.ON_TIME:
            description = f"Scheduled post published: {post.preview()}"
        else:
            description = f"Scheduled post published ({overdue_text}): {post.preview()}"
        self.activity.record(
            post.owner_id,
            ActivityType.SCHEDULED_POST_PUBLISHED,
            description,
            {
                "scheduled_post_id": post.id,
                "linkedin_post_id": published_id,
                "post_type": post.post_type,
                "scheduled_time": post.scheduled_at.isoformat(),
                "overdue_time": overdue_text if policy.annotate else None,
                "priority": policy.priority,
                "tier": tier.value,
            },
        )
        logger.info(
            "[EXECUTOR] Successfully published post %s (published_id=%s)",
            post.id,
            published_id,
        )
        return JobResult(
            post_id=post.id,
            owner_id=post.owner_id,
            outcome=DispatchOutcome.PUBLISHED,
            tier=tier,
            published_id=published_id,
        )

    # ================================================================
    # FAIL PATH
    # ================================================================

    async def fail(
        self,
        post: ScheduledPost,
        message: str,
        tier: Optional[OverdueTier] = None,
        reason: str = "failed",
    ) -> JobResult:
        """Conditionally mark *post* as failed without calling the publisher.

        Args:
            post: A ``pending`` post.
            message: Stored as ``error_message``.
            tier: Overdue tier, when the post was classified.
            reason: Short machine-readable cause for activity metadata.
        """
        try:
            await self._transition(post, {
                "status": PostStatus.FAILED,
                "error_message": message,
                "updated_at": utc_now(),
            })
        except AlreadyClaimedError:
            logger.info(
                "[EXECUTOR] Post %s was already processed by another instance, "
                "skipping failure marking",
                post.id,
            )
            return self._already_claimed(post, tier)
        except StoreUnavailableError as exc:
            return self._store_failure(post, tier, exc)

        post.status = PostStatus.FAILED
        post.error_message = message

        logger.warning("[EXECUTOR] Marked post %s as failed: %s", post.id, message)
        self.activity.record(
            post.owner_id,
            ActivityType.SCHEDULED_POST_FAILED,
            f"Scheduled post failed: {message}",
            {
                "scheduled_post_id": post.id,
                "error_message": message,
                "scheduled_time": post.scheduled_at.isoformat(),
                "reason": reason,
                "tier": tier.value if tier else None,
            },
        )
        return JobResult(
            post_id=post.id,
            owner_id=post.owner_id,
            outcome=DispatchOutcome.FAILED,
            tier=tier,
            error=message,
        )

    # ================================================================
    # INTERNAL HELPERS
    # ================================================================

    async def _transition(self, post: ScheduledPost, fields: Dict[str, Any]) -> None:
        """Apply *fields* only if *post* is still ``pending``.

        Raises:
            AlreadyClaimedError: Zero rows affected.
            StoreUnavailableError: The store call itself failed.
        """
        try:
            affected = await self.store.conditionally_update(
                post.id, PostStatus.PENDING, fields
            )
        except Exception as exc:
            raise StoreUnavailableError(
                f"Conditional update of post {post.id} failed: {exc}"
            ) from exc
        if not affected:
            raise AlreadyClaimedError(post.id)

    def _already_claimed(
        self,
        post: ScheduledPost,
        tier: Optional[OverdueTier],
        discarded_published_id: Optional[str] = None,
    ) -> JobResult:
        self.activity.record(
            post.owner_id,
            ActivityType.SCHEDULED_POST_ALREADY_CLAIMED,
            f"Scheduled post already processed by another instance: {post.preview()}",
            {
                "scheduled_post_id": post.id,
                "discarded_published_id": discarded_published_id,
                "tier": tier.value if tier else None,
            },
        )
        return JobResult(
            post_id=post.id,
            owner_id=post.owner_id,
            outcome=DispatchOutcome.ALREADY_CLAIMED,
            tier=tier,
        )

    def _store_failure(
        self,
        post: ScheduledPost,
        tier: Optional[OverdueTier],
        error: StoreUnavailableError,
        published_id: Optional[str] = None,
    ) -> JobResult:
        # The row is still pending, so the next tick picks the post up again.
        logger.error("[EXECUTOR] %s (post stays pending, will retry)", error)
        self.activity.record(
            post.owner_id,
            ActivityType.SCHEDULED_POST_FINALIZE_ERROR,
            f"Scheduled post not finalized, will retry on the next check: {post.preview()}",
            {
                "scheduled_post_id": post.id,
                "error_message": str(error),
                "published_id": published_id,
                "reason": "store_unavailable",
                "tier": tier.value if tier else None,
            },
        )
        return JobResult(
            post_id=post.id,
            owner_id=post.owner_id,
            outcome=DispatchOutcome.NOT_FINALIZED,
            tier=tier,
            published_id=published_id,
            error=str(error),
        )


__all__ = [
    "NO_CREDENTIAL_MESSAGE",
    "annotate_content",
    "describe_publish_error",
    "PublishExecutor",
]
