# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for notification statistics."""

from datetime import date, datetime, timedelta, timezone

import pytest

from fieldnotify.domains.planned_notification import (
    NotificationStatus,
    StatisticsAggregator,
    ValidationError,
)
from fieldnotify.domains.planned_notification.statistics import count_by_status, summarize


def _at(day: int, hour: int = 0) -> datetime:
    return datetime(2025, 3, day, hour, 0, tzinfo=timezone.utc)


class TestSummarize:
    """Tests for summary statistics."""

    def test_counts(self, make_notification, now):
        """Test today, week and overdue windows on a mixed snapshot."""
        notifications = [
            make_notification(scheduled_at=now - timedelta(hours=1)),
            make_notification(scheduled_at=now + timedelta(hours=2)),
            make_notification(scheduled_at=_at(9, 10)),
            make_notification(scheduled_at=_at(15, 12)),
            make_notification(scheduled_at=_at(17)),
            make_notification(scheduled_at=_at(10, 12), status=NotificationStatus.SENT),
        ]

        summary = summarize(notifications, now)

        assert summary.total == 6
        assert summary.by_status[NotificationStatus.SCHEDULED] == 5
        assert summary.by_status[NotificationStatus.SENT] == 1
        assert summary.scheduled_today == 2
        assert summary.scheduled_this_week == 3
        assert summary.overdue == 2

    def test_total_equals_sum_of_statuses(self, make_notification, now):
        """Test that every status is listed and the counts add up."""
        notifications = [make_notification(status=status) for status in NotificationStatus]
        notifications.append(make_notification(status=NotificationStatus.FAILED))

        summary = summarize(notifications, now)

        assert set(summary.by_status) == set(NotificationStatus)
        assert summary.total == sum(summary.by_status.values()) == 6

    def test_empty(self, now):
        """Test statistics of an empty snapshot."""
        summary = summarize([], now)

        assert summary.total == 0
        assert all(count == 0 for count in summary.by_status.values())
        assert summary.overdue == 0

    def test_today_in_local_timezone(self, make_notification):
        """Test that day boundaries follow the timezone."""
        # 2025-03-10 23:30 UTC is already 2025-03-11 in Warsaw
        now = datetime(2025, 3, 10, 23, 30, tzinfo=timezone.utc)
        notifications = [
            make_notification(scheduled_at=datetime(2025, 3, 11, 5, 0, tzinfo=timezone.utc)),
            make_notification(scheduled_at=datetime(2025, 3, 10, 22, 0, tzinfo=timezone.utc)),
        ]

        summary = summarize(notifications, now, "Europe/Warsaw")

        assert summary.scheduled_today == 1
        assert summary.overdue == 1

    def test_week_ends_at_local_midnight_across_dst(self, make_notification):
        """Test that the week boundary stays at local midnight over the spring change."""
        # Warsaw moves to UTC+2 on 2025-03-30; 2025-04-01 00:00 local is 03-31 22:00 UTC
        now = datetime(2025, 3, 25, 8, 0, tzinfo=timezone.utc)
        notifications = [
            make_notification(scheduled_at=datetime(2025, 3, 31, 21, 30, tzinfo=timezone.utc)),
            make_notification(scheduled_at=datetime(2025, 3, 31, 22, 30, tzinfo=timezone.utc)),
        ]

        summary = summarize(notifications, now, "Europe/Warsaw")

        assert summary.scheduled_this_week == 1

    def test_count_by_status(self, make_notification):
        """Test the per-status counter."""
        counts = count_by_status([make_notification(), make_notification()])

        assert counts[NotificationStatus.SCHEDULED] == 2
        assert counts[NotificationStatus.CANCELLED] == 0


class TestStatisticsAggregator:
    """Tests for StatisticsAggregator."""

    @pytest.mark.asyncio
    async def test_summarize_reads_store(self, store, make_notification, now):
        """Test that the aggregator summarizes the store contents."""
        await store.insert(make_notification())

        summary = await StatisticsAggregator(store).summarize(now)

        assert summary.total == 1

    @pytest.mark.asyncio
    async def test_daily_buckets(self, store, make_notification):
        """Test one bucket per day including empty days."""
        await store.insert(make_notification(scheduled_at=_at(11, 9)))
        await store.insert(make_notification(scheduled_at=_at(11, 15), status=NotificationStatus.SENT))
        await store.insert(make_notification(scheduled_at=_at(13, 9)))
        await store.insert(make_notification(scheduled_at=_at(20, 9)))

        daily = await StatisticsAggregator(store).daily(date(2025, 3, 11), date(2025, 3, 13))

        assert [bucket.day for bucket in daily] == [
            date(2025, 3, 11),
            date(2025, 3, 12),
            date(2025, 3, 13),
        ]
        assert [bucket.total for bucket in daily] == [2, 0, 1]
        assert daily[0].by_status[NotificationStatus.SENT] == 1

    @pytest.mark.asyncio
    async def test_daily_single_day(self, store):
        """Test that start == end yields one bucket."""
        daily = await StatisticsAggregator(store).daily(date(2025, 3, 11), date(2025, 3, 11))

        assert len(daily) == 1

    @pytest.mark.asyncio
    async def test_daily_invalid_range(self, store):
        """Test that inverted or oversized ranges are rejected."""
        aggregator = StatisticsAggregator(store)

        with pytest.raises(ValidationError):
            await aggregator.daily(date(2025, 3, 11), date(2025, 3, 10))
        with pytest.raises(ValidationError):
            await aggregator.daily(date(2025, 1, 1), date(2026, 1, 2))
