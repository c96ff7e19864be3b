"""
Credential gate: resolve a publishing credential for every due post.

Lookups are independent reads, so they all run at once with no cap; the
volume is bounded by the number of posts due in one tick.  Posts whose owner
has no credential are separated out before classification because no
overdue policy can fix a missing credential.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from publish_scheduler.exceptions import CredentialMissingError
from publish_scheduler.scheduling.models import Credential, ScheduledPost
from publish_scheduler.scheduling.ports import CredentialResolverPort

logger = logging.getLogger(__name__)


class CredentialGate:
    """Splits due posts into credentialed and credential-less groups.

    Args:
        resolver: Object with async ``resolve(owner_id)`` returning a
            ``Credential`` or ``None``.
    """

    def __init__(self, resolver: CredentialResolverPort) -> None:
        self.resolver = resolver

    async def _lookup(self, post: ScheduledPost) -> Optional[Credential]:
        try:
            return await self.resolver.resolve(post.owner_id)
        except CredentialMissingError:
            return None
        except Exception as exc:
            logger.error(
                "[CREDENTIALS] Error checking credential for post %s (owner %s): %s",
                post.id,
                post.owner_id,
                exc,
            )
            return None

    async def split(
        self,
        posts: Sequence[ScheduledPost],
    ) -> Tuple[List[Tuple[ScheduledPost, Credential]], List[ScheduledPost]]:
        """Resolve credentials concurrently.

        A resolver error counts as "no credential" for that post only.

        Returns:
            ``(with_credential, without_credential)``; each list keeps the
            input order.
        """
        if not posts:
            return [], []

        credentials = await asyncio.gather(*(self._lookup(post) for post in posts))

        with_credential: List[Tuple[ScheduledPost, Credential]] = []
        without_credential: List[ScheduledPost] = []
        for post, credential in zip(posts, credentials):
            if credential is None:
                logger.info(
                    "[CREDENTIALS] No valid credential for owner %s, post %s",
                    post.owner_id,
                    post.id,
                )
                without_credential.append(post)
            else:
                with_credential.append((post, credential))

        logger.info(
            "[CREDENTIALS] %d posts have valid credentials, %d are missing credentials",
            len(with_credential),
            len(without_credential),
        )
        return with_credential, without_credential


__all__ = [
    "CredentialGate",
]
