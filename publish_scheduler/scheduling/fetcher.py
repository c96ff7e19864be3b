"""
Due-post fetcher: which ``pending`` posts have reached their scheduled time.
"""

import logging
from datetime import datetime
from typing import List

from publish_scheduler.exceptions import StoreUnavailableError
from publish_scheduler.scheduling.models import PostStatus, ScheduledPost
from publish_scheduler.scheduling.ports import JobStorePort
from publish_scheduler.utils import ensure_utc

logger = logging.getLogger(__name__)


class DueJobFetcher:
    """Reads due posts from the job store.

    No side effects.  An empty result is the common case.

    Args:
        store: Job store with an async ``fetch_due_pending(now)`` method.
    """

    def __init__(self, store: JobStorePort) -> None:
        self.store = store

    async def fetch(self, now: datetime) -> List[ScheduledPost]:
        """Return ``pending`` posts with ``scheduled_at <= now``, oldest first.

        Rows that are not pending or not yet due are dropped, and rows that
        cannot be parsed are skipped with an error log, so one corrupt row
        never blocks the rest of the queue.

        Raises:
            StoreUnavailableError: If the store query fails.  The caller
                abandons the tick.
        """
        now = ensure_utc(now)
        try:
            rows = await self.store.fetch_due_pending(now)
        except StoreUnavailableError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(f"Fetching due posts failed: {exc}") from exc

        posts: List[ScheduledPost] = []
        for row in rows or []:
            try:
                post = ScheduledPost.from_row(row)
            except (KeyError, ValueError) as exc:
                logger.error(
                    "[FETCHER] Skipping unreadable row %s: %s",
                    row.get("id") if isinstance(row, dict) else row,
                    exc,
                )
                continue
            if post.status is not PostStatus.PENDING or post.scheduled_at > now:
                continue
            posts.append(post)

        posts.sort(key=lambda p: p.scheduled_at)

        if posts:
            logger.info("[FETCHER] Found %d posts due for publishing", len(posts))
        return posts


__all__ = [
    "DueJobFetcher",
]
