"""Activity (audit trail) logging for the publish pipeline."""
from publish_scheduler.activity.models import ActivityEntry, ActivityType
from publish_scheduler.activity.activity_logger import ActivityLogger

__all__ = [
    "ActivityEntry", "ActivityType",
    "ActivityLogger",
]
