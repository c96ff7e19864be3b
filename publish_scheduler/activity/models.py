"""Activity data models: ActivityType, ActivityEntry."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class ActivityType(Enum):
    """Audit events emitted by the publish pipeline.

    Values match the ``activity_type`` column of ``user_activities``.
    """

    SCHEDULED_POST_PUBLISHED = "scheduled_post_published"
    SCHEDULED_POST_FAILED = "scheduled_post_failed"
    SCHEDULED_POST_ALREADY_CLAIMED = "scheduled_post_already_claimed"
    SCHEDULED_POST_RESCHEDULED = "scheduled_post_rescheduled"
    SCHEDULED_POST_FINALIZE_ERROR = "scheduled_post_finalize_error"


@dataclass
class ActivityEntry:
    """One human-readable activity record for a post owner."""

    # Required fields
    timestamp: datetime
    owner_id: str
    activity_type: ActivityType
    description: str

    # Additional data
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary for Supabase insertion."""
        return {
            "user_id": self.owner_id,
            "activity_type": self.activity_type.value,
            "description": self.description,
            "metadata": self.metadata,
            "created_at": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Serialize to JSON string for file logging."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)

    def to_readable(self) -> str:
        """Human-readable format for console output."""
        time_str = self.timestamp.strftime("%H:%M:%S")
        return (
            f"[{time_str}] [{self.activity_type.value}] "
            f"owner={self.owner_id} {self.description}"
        )
