"""
Scheduling data models.

Defines the core data structures used by the scheduling subsystem:
- ``PostStatus``: Lifecycle status of a scheduled post.
- ``ScheduledPost``: A post waiting in the job store for publication.
- ``Credential``: A publishing credential resolved for a post owner.
- ``OverdueTier``: How late a due post is, recomputed every tick.
- ``TierPolicy``: How a tier is dispatched.
- ``DispatchOutcome`` / ``JobResult`` / ``TickReport``: What a tick did.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from publish_scheduler.exceptions import ValidationError
from publish_scheduler.utils import parse_timestamp


# =============================================================================
# POST STATUS ENUM
# =============================================================================


class PostStatus(Enum):
    """Lifecycle status of a scheduled post.

    Transitions (each happens at most once, guarded by a conditional
    update on ``status = 'pending'``):
        PENDING -> PUBLISHED
        PENDING -> FAILED
    """

    PENDING = "pending"
    PUBLISHED = "published"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Check if status is terminal (no further transitions allowed)."""
        return self in {PostStatus.PUBLISHED, PostStatus.FAILED}


# =============================================================================
# SCHEDULED POST
# =============================================================================


@dataclass
class ScheduledPost:
    """A post scheduled for future publication.

    Owned by the job store; the scheduler only reads it and finalizes its
    status.

    Attributes:
        id: Unique identifier.
        owner_id: Whose credential and content this is.
        content: Opaque payload handed to the publisher.
        scheduled_at: Target publish instant (timezone-aware UTC).
        status: Current lifecycle status.
        published_id: External identifier returned by the publisher.
        error_message: Failure reason once ``FAILED``.
        updated_at: Last mutation time (observability only).
        published_at: When the post was published.
        post_type: Optional free-form kind of post, echoed into activity
            metadata.
    """

    # Required fields
    id: str
    owner_id: str
    content: str
    scheduled_at: datetime

    # Status tracking
    status: PostStatus = PostStatus.PENDING
    published_id: Optional[str] = None
    error_message: Optional[str] = None
    updated_at: Optional[datetime] = None
    published_at: Optional[datetime] = None

    # Metadata
    post_type: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ScheduledPost":
        """Convert a ``scheduled_posts`` row dict to a ``ScheduledPost``.

        Args:
            row: Dict from a job store query result.

        Returns:
            A ``ScheduledPost`` instance.
        """
        updated_at = None
        if row.get("updated_at"):
            updated_at = parse_timestamp(row["updated_at"])

        published_at = None
        if row.get("published_at"):
            published_at = parse_timestamp(row["published_at"])

        return cls(
            id=str(row["id"]),
            owner_id=str(row.get("user_id", "")),
            content=row.get("content") or "",
            scheduled_at=parse_timestamp(row["scheduled_time"]),
            status=PostStatus(row.get("status", "pending")),
            published_id=row.get("linkedin_post_id"),
            error_message=row.get("error_message"),
            updated_at=updated_at,
            published_at=published_at,
            post_type=row.get("post_type"),
        )

    def to_row(self) -> Dict[str, Any]:
        """Serialize to a ``scheduled_posts`` row dict."""
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "content": self.content,
            "scheduled_time": self.scheduled_at.isoformat(),
            "status": self.status.value,
            "linkedin_post_id": self.published_id,
            "error_message": self.error_message,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "post_type": self.post_type,
        }

    def preview(self, length: int = 50) -> str:
        """Short content preview for activity descriptions."""
        if len(self.content) <= length:
            return self.content
        return f"{self.content[:length]}..."


# =============================================================================
# CREDENTIAL
# =============================================================================


@dataclass
class Credential:
    """A publishing credential for one owner.

    Opaque to the scheduler: it is resolved once per tick and handed to the
    publisher unchanged.
    """

    owner_id: str
    access_token: str
    external_user_id: Optional[str] = None
    expires_at: Optional[datetime] = None

    def __repr__(self) -> str:
        # Keep tokens out of logs
        return (
            f"Credential(owner_id={self.owner_id!r}, "
            f"external_user_id={self.external_user_id!r})"
        )


# =============================================================================
# OVERDUE TIERS AND POLICIES
# =============================================================================


class OverdueTier(Enum):
    """Overdue severity buckets, most severe first."""

    CRITICALLY_OVERDUE = "critically_overdue"  # > 7 days
    SEVERELY_OVERDUE = "severely_overdue"  # 1-7 days
    MODERATELY_OVERDUE = "moderately_overdue"  # 1-24 hours
    RECENTLY_OVERDUE = "recently_overdue"  # 5 minutes - 1 hour
    ON_TIME = "on_time"  # within 5 minutes

    @property
    def label(self) -> str:
        """Human-readable tier name."""
        return self.value.replace("_", " ").title()


@dataclass
class TierPolicy:
    """Dispatch policy for one overdue tier.

    Attributes:
        publish: Whether posts in this tier are sent to the publisher at all.
        annotate: Whether content gets the delay annotation.
        concurrency: Posts dispatched at once per batch.
        delay_ms: Pause between batches in milliseconds.
        priority: ``"high"``, ``"normal"`` or ``"low"``; recorded in activity
            metadata.
    """

    publish: bool = True
    annotate: bool = False
    concurrency: int = 2
    delay_ms: int = 1000
    priority: str = "normal"

    def __post_init__(self) -> None:
        if self.concurrency < 1:
            raise ValidationError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.delay_ms < 0:
            raise ValidationError(f"delay_ms must be >= 0, got {self.delay_ms}")


# =============================================================================
# DISPATCH RESULTS
# =============================================================================


class DispatchOutcome(Enum):
    """What happened to a single post during a tick."""

    PUBLISHED = "published"
    FAILED = "failed"
    ALREADY_CLAIMED = "already_claimed"
    NOT_FINALIZED = "not_finalized"


@dataclass
class JobResult:
    """Outcome of dispatching one post."""

    post_id: str
    owner_id: str
    outcome: DispatchOutcome
    tier: Optional[OverdueTier] = None
    published_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TickReport:
    """Summary of one fetch-classify-dispatch pass.

    Attributes:
        started_at: When the tick began (also the tick's ``now``).
        finished_at: When the tick completed.
        due_count: Number of due pending posts fetched.
        missing_credentials: Posts failed because no credential resolved.
        tier_counts: Number of credentialed posts per tier.
        results: One ``JobResult`` per post that reached the executor.
        aborted: ``True`` when the fetch failed and nothing was processed.
    """

    started_at: datetime
    finished_at: Optional[datetime] = None
    due_count: int = 0
    missing_credentials: int = 0
    tier_counts: Dict[OverdueTier, int] = field(default_factory=dict)
    results: List[JobResult] = field(default_factory=list)
    aborted: bool = False

    def _count(self, outcome: DispatchOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def published(self) -> int:
        return self._count(DispatchOutcome.PUBLISHED)

    @property
    def failed(self) -> int:
        return self._count(DispatchOutcome.FAILED)

    @property
    def already_claimed(self) -> int:
        return self._count(DispatchOutcome.ALREADY_CLAIMED)

    @property
    def not_finalized(self) -> int:
        return self._count(DispatchOutcome.NOT_FINALIZED)


# =============================================================================
# PUBLIC API
# =============================================================================

__all__ = [
    "PostStatus",
    "ScheduledPost",
    "Credential",
    "OverdueTier",
    "TierPolicy",
    "DispatchOutcome",
    "JobResult",
    "TickReport",
]
