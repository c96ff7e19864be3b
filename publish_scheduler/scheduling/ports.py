"""
Collaborator interfaces consumed by the scheduling core.

The scheduler never talks to a concrete database or API directly; it is
handed objects that satisfy these protocols.  ``publish_scheduler.database``
provides Supabase-backed implementations of the store, resolver and
activity log.  The publisher is always supplied by the host process.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from publish_scheduler.scheduling.models import Credential, PostStatus


class JobStorePort(Protocol):
    """Persistent table of scheduled posts with compare-and-swap updates."""

    async def fetch_due_pending(self, now: datetime) -> List[Dict[str, Any]]:
        """Return ``pending`` rows with ``scheduled_time <= now``, oldest first."""
        ...

    async def conditionally_update(
        self,
        post_id: str,
        from_status: PostStatus,
        fields: Dict[str, Any],
    ) -> int:
        """Apply *fields* only if the row is still in *from_status*.

        Returns the number of affected rows (0 or 1).
        """
        ...

    async def fetch_pending_for_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        """Return every ``pending`` row for *owner_id*, oldest first."""
        ...


class CredentialResolverPort(Protocol):
    """Looks up a usable publishing credential for an owner."""

    async def resolve(self, owner_id: str) -> Optional[Credential]:
        """Return a credential, or ``None`` when none is available."""
        ...


class PublisherPort(Protocol):
    """External publishing API."""

    async def publish(self, content: str, credential: Credential) -> str:
        """Publish *content* and return the permanent external id.

        Raises on any failure; the message is stored on the post verbatim.
        """
        ...


class ActivityLogPort(Protocol):
    """Append-only sink for human-readable activity records."""

    async def record(
        self,
        owner_id: str,
        activity_type: str,
        description: str,
        metadata: Dict[str, Any],
    ) -> None:
        """Append one activity record."""
        ...


__all__ = [
    "JobStorePort",
    "CredentialResolverPort",
    "PublisherPort",
    "ActivityLogPort",
]
