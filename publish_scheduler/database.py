"""
Async Supabase adapters for the publishing scheduler.

``SupabaseDB`` is the single place that talks to Supabase.  One instance
serves as job store (``scheduled_posts``), credential resolver
(``linkedin_connections``) and activity sink (``user_activities``).

Usage::

    from publish_scheduler.database import SupabaseDB

    # In async context:
    db = await SupabaseDB.create()
    scheduler = PublishingScheduler(db, db, publisher, ActivityLogger(sink=db))
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from supabase import AsyncClient, create_async_client

from publish_scheduler.exceptions import (
    RetryExhaustedError,
    StoreUnavailableError,
    ValidationError,
)
from publish_scheduler.scheduling.models import Credential, PostStatus
from publish_scheduler.utils import ensure_utc, parse_timestamp, utc_now, with_retry

logger = logging.getLogger(__name__)

SCHEDULED_POSTS_TABLE = "scheduled_posts"
CONNECTIONS_TABLE = "linkedin_connections"
ACTIVITIES_TABLE = "user_activities"

# ScheduledPost attribute -> scheduled_posts column, where they differ
FIELD_TO_COLUMN: Dict[str, str] = {
    "owner_id": "user_id",
    "scheduled_at": "scheduled_time",
    "published_id": "linkedin_post_id",
}


# =============================================================================
# VALIDATION HELPERS
# =============================================================================


def validate_not_empty(value: Any, name: str) -> None:
    """Validate that *value* is not ``None`` or an empty string.

    Args:
        value: The value to check.
        name: Human-readable field name used in error messages.

    Raises:
        ValidationError: If *value* is ``None`` or a blank string.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if isinstance(value, str) and not value.strip():
        raise ValidationError(f"{name} cannot be empty string")


def validate_positive(value: Union[int, float], name: str) -> None:
    """Validate that *value* is strictly positive (> 0).

    Raises:
        ValidationError: If *value* is ``None`` or not positive.
    """
    if value is None:
        raise ValidationError(f"{name} cannot be None")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")


def to_columns(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Translate ScheduledPost attribute names and values into a row patch.

    Enum members become their values and datetimes become ISO-8601 UTC
    strings.
    """
    row: Dict[str, Any] = {}
    for name, value in fields.items():
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, datetime):
            value = ensure_utc(value).isoformat()
        row[FIELD_TO_COLUMN.get(name, name)] = value
    return row


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class SupabaseConfig:
    """Supabase configuration loaded from environment variables.

    Attributes:
        url: The Supabase project URL (``SUPABASE_URL``).
        key: The service-role key for full server-side access
            (``SUPABASE_SERVICE_KEY``).
    """

    url: str
    key: str  # service_role key for full server-side access

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        """Create a config instance from environment variables.

        Raises:
            ValueError: If either variable is missing or empty.
        """
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_KEY")

        if not url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set"
            )

        return cls(url=url, key=key)


# =============================================================================
# SUPABASE DATABASE CLIENT
# =============================================================================


class SupabaseDB:
    """Async Supabase client implementing the scheduler's storage ports.

    **Important:** Use the :meth:`create` factory method instead of
    ``__init__`` directly -- the underlying async client requires an
    ``await`` during initialisation.

    Args:
        client: Initialised Supabase ``AsyncClient``.
        fetch_retry_attempts: Attempts for the due-post query.
        fetch_retry_base_delay: First backoff delay in seconds.
    """

    def __init__(
        self,
        client: AsyncClient,
        fetch_retry_attempts: int = 2,
        fetch_retry_base_delay: float = 1.0,
    ) -> None:
        """Private constructor.  Use :meth:`create` factory method."""
        validate_positive(fetch_retry_attempts, "fetch_retry_attempts")
        self.client = client
        self.fetch_retry_attempts = fetch_retry_attempts
        self.fetch_retry_base_delay = fetch_retry_base_delay

    @classmethod
    async def create(
        cls,
        config: Optional[SupabaseConfig] = None,
        fetch_retry_attempts: int = 2,
        fetch_retry_base_delay: float = 1.0,
    ) -> "SupabaseDB":
        """Factory method to create an async :class:`SupabaseDB` instance.

        Args:
            config: Optional configuration.  When ``None``,
                :meth:`SupabaseConfig.from_env` is used.
            fetch_retry_attempts: Attempts for the due-post query.
            fetch_retry_base_delay: First backoff delay in seconds.

        Returns:
            A fully initialised :class:`SupabaseDB` instance.
        """
        config = config or SupabaseConfig.from_env()
        client = await create_async_client(config.url, config.key)
        return cls(
            client,
            fetch_retry_attempts=fetch_retry_attempts,
            fetch_retry_base_delay=fetch_retry_base_delay,
        )

    # -----------------------------------------------------------------
    # SCHEDULED POSTS (job store)
    # -----------------------------------------------------------------

    async def fetch_due_pending(self, now: datetime) -> List[Dict[str, Any]]:
        """Get ``pending`` posts whose ``scheduled_time`` is at or before *now*.

        The query is retried with exponential backoff.

        Returns:
            List of scheduled post rows ordered by ``scheduled_time``
            ascending.

        Raises:
            StoreUnavailableError: When every attempt failed.
        """
        cutoff = ensure_utc(now).isoformat()

        @with_retry(
            max_attempts=self.fetch_retry_attempts,
            base_delay=self.fetch_retry_base_delay,
            operation_name="fetch_due_pending",
        )
        async def _query() -> List[Dict[str, Any]]:
            result = await (
                self.client.table(SCHEDULED_POSTS_TABLE)
                .select("*")
                .eq("status", PostStatus.PENDING.value)
                .lte("scheduled_time", cutoff)
                .order("scheduled_time", desc=False)
                .execute()
            )
            return result.data or []

        try:
            return await _query()
        except RetryExhaustedError as exc:
            raise StoreUnavailableError(
                f"Fetching due posts failed after {exc.attempts} attempts: {exc.last_error}"
            ) from exc

    async def conditionally_update(
        self,
        post_id: str,
        from_status: PostStatus,
        fields: Dict[str, Any],
    ) -> int:
        """Update a scheduled post only if it is still in *from_status*.

        This is the only concurrency control between scheduler instances:
        the ``status`` filter makes the write a compare-and-swap.

        Args:
            post_id: UUID of the scheduled post.
            from_status: Status the row must currently have.
            fields: ScheduledPost attribute names to new values.

        Returns:
            Number of rows updated (``0`` when another actor got there
            first).
        """
        validate_not_empty(post_id, "post_id")
        if not fields:
            raise ValidationError("fields cannot be empty")

        result = await (
            self.client.table(SCHEDULED_POSTS_TABLE)
            .update(to_columns(fields))
            .eq("id", post_id)
            .eq("status", from_status.value)
            .execute()
        )
        return len(result.data) if result.data else 0

    async def fetch_pending_for_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        """Get every ``pending`` post of *owner_id*, oldest first."""
        validate_not_empty(owner_id, "owner_id")

        result = await (
            self.client.table(SCHEDULED_POSTS_TABLE)
            .select("*")
            .eq("user_id", owner_id)
            .eq("status", PostStatus.PENDING.value)
            .order("scheduled_time", desc=False)
            .execute()
        )
        return result.data or []

    # -----------------------------------------------------------------
    # CREDENTIALS
    # -----------------------------------------------------------------

    async def resolve(self, owner_id: str) -> Optional[Credential]:
        """Get the newest non-expired LinkedIn connection for *owner_id*.

        Returns:
            A :class:`Credential`, or ``None`` when the owner has no usable
            connection.
        """
        validate_not_empty(owner_id, "owner_id")

        result = await (
            self.client.table(CONNECTIONS_TABLE)
            .select("*")
            .eq("user_id", owner_id)
            .gt("expires_at", utc_now().isoformat())
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        token = row.get("linkedin_access_token")
        if not token:
            logger.warning("[DB] Connection for owner %s has no access token", owner_id)
            return None

        expires_at = parse_timestamp(row["expires_at"]) if row.get("expires_at") else None
        return Credential(
            owner_id=owner_id,
            access_token=token,
            external_user_id=row.get("linkedin_user_id"),
            expires_at=expires_at,
        )

    # -----------------------------------------------------------------
    # ACTIVITY LOG
    # -----------------------------------------------------------------

    async def record(
        self,
        owner_id: str,
        activity_type: str,
        description: str,
        metadata: Dict[str, Any],
    ) -> None:
        """Insert one row into ``user_activities``."""
        validate_not_empty(activity_type, "activity_type")

        await (
            self.client.table(ACTIVITIES_TABLE)
            .insert({
                "user_id": owner_id,
                "activity_type": activity_type,
                "description": description,
                "metadata": metadata or {},
                "created_at": utc_now().isoformat(),
            })
            .execute()
        )


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "validate_not_empty",
    "validate_positive",
    "to_columns",
    "SupabaseConfig",
    "SupabaseDB",
    "FIELD_TO_COLUMN",
]
