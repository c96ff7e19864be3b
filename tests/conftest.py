"""Shared fixtures for the publishing scheduler test suite."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from publish_scheduler.database import to_columns
from publish_scheduler.scheduling.models import Credential, PostStatus, ScheduledPost
from publish_scheduler.utils import ensure_utc, parse_timestamp


# ---------------------------------------------------------------------------
# Ensure we don't hit real services during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear credentials and overrides so tests never hit real services."""
    keys = [
        "SUPABASE_URL",
        "SUPABASE_SERVICE_KEY",
        "SCHEDULER_CHECK_INTERVAL_SECONDS",
        "SCHEDULER_LOG_LEVEL",
        "SCHEDULER_LOG_DIR",
        "SCHEDULER_PUBLISHER",
    ]
    for key in keys:
        monkeypatch.delenv(key, raising=False)


# ---------------------------------------------------------------------------
# Common datetime fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests."""
    return datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------
class InMemoryJobStore:
    """``scheduled_posts`` table kept in a dict, with compare-and-swap updates.

    No ``await`` happens between the status check and the write, so each
    ``conditionally_update`` is atomic on a single event loop.
    """

    def __init__(self) -> None:
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.fetch_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.fetch_calls = 0
        self.update_calls: List[Dict[str, Any]] = []

    def add(self, post: ScheduledPost) -> ScheduledPost:
        self.rows[post.id] = post.to_row()
        return post

    def status_of(self, post_id: str) -> PostStatus:
        return PostStatus(self.rows[post_id]["status"])

    async def fetch_due_pending(self, now: datetime) -> List[Dict[str, Any]]:
        self.fetch_calls += 1
        if self.fetch_error is not None:
            raise self.fetch_error
        due = [
            dict(row) for row in self.rows.values()
            if row["status"] == PostStatus.PENDING.value
            and parse_timestamp(row["scheduled_time"]) <= ensure_utc(now)
        ]
        due.sort(key=lambda row: parse_timestamp(row["scheduled_time"]))
        return due

    async def conditionally_update(
        self,
        post_id: str,
        from_status: PostStatus,
        fields: Dict[str, Any],
    ) -> int:
        self.update_calls.append({"post_id": post_id, "fields": dict(fields)})
        if self.update_error is not None:
            raise self.update_error
        row = self.rows.get(post_id)
        if row is None or row["status"] != from_status.value:
            return 0
        row.update(to_columns(fields))
        return 1

    async def fetch_pending_for_owner(self, owner_id: str) -> List[Dict[str, Any]]:
        rows = [
            dict(row) for row in self.rows.values()
            if row["user_id"] == owner_id and row["status"] == PostStatus.PENDING.value
        ]
        rows.sort(key=lambda row: parse_timestamp(row["scheduled_time"]))
        return rows


class FakeCredentialResolver:
    """Resolves credentials from a dict; owners in ``errors`` raise."""

    def __init__(self, owners: Optional[List[str]] = None) -> None:
        self.credentials: Dict[str, Credential] = {
            owner: Credential(owner_id=owner, access_token=f"token-{owner}")
            for owner in owners or []
        }
        self.errors: Dict[str, Exception] = {}
        self.calls: List[str] = []

    async def resolve(self, owner_id: str) -> Optional[Credential]:
        self.calls.append(owner_id)
        await asyncio.sleep(0)
        if owner_id in self.errors:
            raise self.errors[owner_id]
        return self.credentials.get(owner_id)


class FakePublisher:
    """Records every publish call.

    ``errors`` maps a content prefix to the exception raised for it, so an
    annotated post still matches its original content.
    """

    def __init__(self) -> None:
        self.calls: List[Dict[str, Any]] = []
        self.errors: Dict[str, Exception] = {}
        self.return_ids: Dict[str, Optional[str]] = {}
        self.active = 0
        self.max_active = 0

    async def publish(self, content: str, credential: Credential) -> Optional[str]:
        self.calls.append({"content": content, "credential": credential})
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(0)
            for prefix, exc in self.errors.items():
                if content.startswith(prefix):
                    raise exc
            for prefix, published_id in self.return_ids.items():
                if content.startswith(prefix):
                    return published_id
            return f"urn:li:share:{len(self.calls)}"
        finally:
            self.active -= 1


class RecordingSink:
    """Activity sink that keeps records in a list, or fails on demand."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.records: List[Dict[str, Any]] = []
        self.error = error

    async def record(
        self,
        owner_id: str,
        activity_type: str,
        description: str,
        metadata: Dict[str, Any],
    ) -> None:
        if self.error is not None:
            raise self.error
        self.records.append({
            "owner_id": owner_id,
            "activity_type": activity_type,
            "description": description,
            "metadata": metadata,
        })


class SleepRecorder:
    """Stand-in for ``asyncio.sleep`` that records the requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def resolver():
    return FakeCredentialResolver(owners=["owner-1", "owner-2", "owner-3"])


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def activity_sink():
    return RecordingSink()


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def make_post(sample_utc_now):
    """Factory: a pending post scheduled *minutes_overdue* before the fixed now."""
    counter = {"n": 0}

    def _make(
        minutes_overdue: float = 0,
        owner_id: str = "owner-1",
        content: Optional[str] = None,
        post_id: Optional[str] = None,
    ) -> ScheduledPost:
        counter["n"] += 1
        return ScheduledPost(
            id=post_id or f"post-{counter['n']:03d}",
            owner_id=owner_id,
            content=content or f"Post body number {counter['n']}",
            scheduled_at=sample_utc_now - timedelta(minutes=minutes_overdue),
        )

    return _make


# ---------------------------------------------------------------------------
# Mock Supabase client
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_supabase_client():
    """A mock Supabase async client.

    Query builder calls chain synchronously; only ``execute()`` is awaited.
    """
    client = MagicMock()
    table_mock = MagicMock()
    for method in ("select", "insert", "update", "eq", "gt", "lte", "order", "limit"):
        getattr(table_mock, method).return_value = table_mock
    table_mock.execute = AsyncMock(return_value=MagicMock(data=[], count=0))
    client.table.return_value = table_mock
    return client


@pytest.fixture
def failing_sink():
    """Activity sink whose every write raises."""
    return RecordingSink(error=ConnectionError("insert failed"))
