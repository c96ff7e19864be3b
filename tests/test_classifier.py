"""Tests for overdue classification, formatting and bucketing."""

from datetime import timedelta

import pytest

from publish_scheduler.scheduling.classifier import (
    bucket_by_tier,
    classify_overdue,
    format_overdue,
    overdue_minutes,
)
from publish_scheduler.scheduling.models import OverdueTier


# =============================================================================
# overdue_minutes
# =============================================================================


class TestOverdueMinutes:
    def test_whole_minutes(self, sample_utc_now):
        assert overdue_minutes(sample_utc_now, sample_utc_now - timedelta(minutes=42)) == 42

    def test_rounds_down(self, sample_utc_now):
        scheduled = sample_utc_now - timedelta(minutes=5, seconds=59)
        assert overdue_minutes(sample_utc_now, scheduled) == 5

    def test_negative_when_not_yet_due(self, sample_utc_now):
        assert overdue_minutes(sample_utc_now, sample_utc_now + timedelta(minutes=2)) == -2

    def test_naive_datetimes_treated_as_utc(self, sample_utc_now):
        naive_now = sample_utc_now.replace(tzinfo=None)
        assert overdue_minutes(naive_now, sample_utc_now - timedelta(minutes=10)) == 10


# =============================================================================
# classify_overdue
# =============================================================================


class TestClassifyOverdue:
    """Thresholds are strict: a value exactly on a boundary stays in the lower tier."""

    @pytest.mark.parametrize(
        "minutes, expected",
        [
            (-30, OverdueTier.ON_TIME),
            (0, OverdueTier.ON_TIME),
            (5, OverdueTier.ON_TIME),
            (6, OverdueTier.RECENTLY_OVERDUE),
            (30, OverdueTier.RECENTLY_OVERDUE),
            (60, OverdueTier.RECENTLY_OVERDUE),
            (61, OverdueTier.MODERATELY_OVERDUE),
            (90, OverdueTier.MODERATELY_OVERDUE),
            (1440, OverdueTier.MODERATELY_OVERDUE),
            (1441, OverdueTier.SEVERELY_OVERDUE),
            (3 * 1440, OverdueTier.SEVERELY_OVERDUE),
            (10080, OverdueTier.SEVERELY_OVERDUE),
            (10081, OverdueTier.CRITICALLY_OVERDUE),
            (9 * 1440, OverdueTier.CRITICALLY_OVERDUE),
        ],
    )
    def test_tier_boundaries(self, sample_utc_now, minutes, expected):
        scheduled = sample_utc_now - timedelta(minutes=minutes)
        assert classify_overdue(sample_utc_now, scheduled) is expected

    def test_partial_minute_past_boundary_is_floored(self, sample_utc_now):
        scheduled = sample_utc_now - timedelta(minutes=60, seconds=59)
        assert classify_overdue(sample_utc_now, scheduled) is OverdueTier.RECENTLY_OVERDUE


# =============================================================================
# format_overdue
# =============================================================================


class TestFormatOverdue:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(days=9), "9 days overdue"),
            (timedelta(days=1, hours=5), "1 day overdue"),
            (timedelta(hours=1, minutes=30), "1 hour overdue"),
            (timedelta(hours=23, minutes=59), "23 hours overdue"),
            (timedelta(minutes=1), "1 minute overdue"),
            (timedelta(minutes=30), "30 minutes overdue"),
            (timedelta(seconds=10), "0 minutes overdue"),
        ],
    )
    def test_largest_unit(self, sample_utc_now, delta, expected):
        assert format_overdue(sample_utc_now, sample_utc_now - delta) == expected

    def test_future_clamped_to_zero(self, sample_utc_now):
        assert format_overdue(sample_utc_now, sample_utc_now + timedelta(hours=2)) == "0 minutes overdue"


# =============================================================================
# bucket_by_tier
# =============================================================================


class TestBucketByTier:
    def test_every_tier_present_for_empty_input(self, sample_utc_now):
        buckets = bucket_by_tier([], sample_utc_now, lambda item: item)
        assert set(buckets) == set(OverdueTier)
        assert all(items == [] for items in buckets.values())

    def test_partition_and_order(self, sample_utc_now, make_post):
        posts = [
            make_post(minutes_overdue=2),
            make_post(minutes_overdue=9 * 1440),
            make_post(minutes_overdue=3),
            make_post(minutes_overdue=90),
        ]
        buckets = bucket_by_tier(posts, sample_utc_now, lambda p: p.scheduled_at)

        assert buckets[OverdueTier.ON_TIME] == [posts[0], posts[2]]
        assert buckets[OverdueTier.CRITICALLY_OVERDUE] == [posts[1]]
        assert buckets[OverdueTier.MODERATELY_OVERDUE] == [posts[3]]
        assert buckets[OverdueTier.SEVERELY_OVERDUE] == []
        assert sum(len(items) for items in buckets.values()) == len(posts)

    def test_works_on_pairs(self, sample_utc_now, make_post):
        pair = (make_post(minutes_overdue=20), object())
        buckets = bucket_by_tier([pair], sample_utc_now, lambda item: item[0].scheduled_at)
        assert buckets[OverdueTier.RECENTLY_OVERDUE] == [pair]
