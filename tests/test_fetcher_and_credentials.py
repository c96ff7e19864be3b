"""Tests for DueJobFetcher and CredentialGate."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from publish_scheduler.exceptions import CredentialMissingError, StoreUnavailableError
from publish_scheduler.scheduling.credentials import CredentialGate
from publish_scheduler.scheduling.fetcher import DueJobFetcher
from publish_scheduler.scheduling.models import PostStatus


# =============================================================================
# DueJobFetcher
# =============================================================================


class TestDueJobFetcher:
    @pytest.mark.asyncio
    async def test_returns_due_pending_oldest_first(self, job_store, make_post, sample_utc_now):
        newer = job_store.add(make_post(minutes_overdue=5))
        older = job_store.add(make_post(minutes_overdue=50))
        job_store.add(make_post(minutes_overdue=-5))

        posts = await DueJobFetcher(job_store).fetch(sample_utc_now)

        assert [p.id for p in posts] == [older.id, newer.id]
        assert all(p.status is PostStatus.PENDING for p in posts)

    @pytest.mark.asyncio
    async def test_filters_rows_the_store_should_not_have_returned(
        self, make_post, sample_utc_now
    ):
        pending = make_post(minutes_overdue=1).to_row()
        done = make_post(minutes_overdue=1).to_row()
        done["status"] = "published"
        future = make_post(minutes_overdue=-30).to_row()
        store = MagicMock()
        store.fetch_due_pending = AsyncMock(return_value=[future, done, pending])

        posts = await DueJobFetcher(store).fetch(sample_utc_now)

        assert [p.id for p in posts] == [pending["id"]]

    @pytest.mark.asyncio
    async def test_unreadable_row_skipped(self, make_post, sample_utc_now):
        good = make_post(minutes_overdue=1).to_row()
        store = MagicMock()
        store.fetch_due_pending = AsyncMock(return_value=[
            {"id": "broken", "status": "pending"},
            {"id": "bad-date", "status": "pending", "scheduled_time": "soon"},
            good,
        ])

        posts = await DueJobFetcher(store).fetch(sample_utc_now)

        assert [p.id for p in posts] == [good["id"]]

    @pytest.mark.asyncio
    async def test_store_error_wrapped(self, job_store, sample_utc_now):
        job_store.fetch_error = TimeoutError("statement timeout")

        with pytest.raises(StoreUnavailableError, match="statement timeout"):
            await DueJobFetcher(job_store).fetch(sample_utc_now)

    @pytest.mark.asyncio
    async def test_store_unavailable_passes_through(self, job_store, sample_utc_now):
        original = StoreUnavailableError("retries exhausted")
        job_store.fetch_error = original

        with pytest.raises(StoreUnavailableError) as exc_info:
            await DueJobFetcher(job_store).fetch(sample_utc_now)
        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_empty(self, job_store, sample_utc_now):
        assert await DueJobFetcher(job_store).fetch(sample_utc_now) == []


# =============================================================================
# CredentialGate
# =============================================================================


class TestCredentialGate:
    @pytest.mark.asyncio
    async def test_split_keeps_order(self, resolver, make_post):
        posts = [
            make_post(owner_id="owner-1"),
            make_post(owner_id="nobody"),
            make_post(owner_id="owner-2"),
        ]

        with_credential, without_credential = await CredentialGate(resolver).split(posts)

        assert [post.id for post, _ in with_credential] == [posts[0].id, posts[2].id]
        assert with_credential[0][1].owner_id == "owner-1"
        assert without_credential == [posts[1]]

    @pytest.mark.asyncio
    async def test_resolver_raising_credential_missing(self, resolver, make_post):
        resolver.errors["owner-1"] = CredentialMissingError("owner-1")
        post = make_post(owner_id="owner-1")

        with_credential, without_credential = await CredentialGate(resolver).split([post])

        assert with_credential == []
        assert without_credential == [post]

    @pytest.mark.asyncio
    async def test_resolver_error_isolated_per_post(self, resolver, make_post):
        resolver.errors["owner-2"] = ConnectionError("down")
        ok = make_post(owner_id="owner-1")
        broken = make_post(owner_id="owner-2")

        with_credential, without_credential = await CredentialGate(resolver).split([ok, broken])

        assert [post for post, _ in with_credential] == [ok]
        assert without_credential == [broken]

    @pytest.mark.asyncio
    async def test_lookups_once_per_post(self, resolver, make_post):
        posts = [make_post(owner_id="owner-1") for _ in range(3)]

        await CredentialGate(resolver).split(posts)

        assert resolver.calls == ["owner-1"] * 3

    @pytest.mark.asyncio
    async def test_empty(self, resolver):
        assert await CredentialGate(resolver).split([]) == ([], [])
        assert resolver.calls == []
