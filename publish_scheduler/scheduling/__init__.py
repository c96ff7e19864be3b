"""Scheduling subsystem: due-post detection, overdue tiers, bounded dispatch."""

from publish_scheduler.scheduling.batch_runner import BoundedBatchRunner
from publish_scheduler.scheduling.classifier import (
    bucket_by_tier,
    classify_overdue,
    format_overdue,
    overdue_minutes,
)
from publish_scheduler.scheduling.clock import Clock
from publish_scheduler.scheduling.credentials import CredentialGate
from publish_scheduler.scheduling.dispatcher import TieredDispatcher, default_tier_policies
from publish_scheduler.scheduling.executor import NO_CREDENTIAL_MESSAGE, PublishExecutor
from publish_scheduler.scheduling.fetcher import DueJobFetcher
from publish_scheduler.scheduling.models import (
    Credential,
    DispatchOutcome,
    JobResult,
    OverdueTier,
    PostStatus,
    ScheduledPost,
    TickReport,
    TierPolicy,
)
from publish_scheduler.scheduling.overdue_management import OverdueAnalysis, OverdueManager
from publish_scheduler.scheduling.publishing_scheduler import PublishingScheduler

__all__ = [
    "BoundedBatchRunner",
    "bucket_by_tier",
    "classify_overdue",
    "format_overdue",
    "overdue_minutes",
    "Clock",
    "CredentialGate",
    "TieredDispatcher",
    "default_tier_policies",
    "NO_CREDENTIAL_MESSAGE",
    "PublishExecutor",
    "DueJobFetcher",
    "Credential",
    "DispatchOutcome",
    "JobResult",
    "OverdueTier",
    "PostStatus",
    "ScheduledPost",
    "TickReport",
    "TierPolicy",
    "OverdueAnalysis",
    "OverdueManager",
    "PublishingScheduler",
]
