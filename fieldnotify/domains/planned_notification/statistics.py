# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Statistics over planned notifications.

The aggregator reads one snapshot from the store and derives every count
from it, so total always equals the sum of the per-status counts.

Usage:
    aggregator = StatisticsAggregator(store, timezone="Europe/Warsaw")
    summary = await aggregator.summarize(now)
    daily = await aggregator.daily(date(2025, 1, 1), date(2025, 1, 31))
"""

import logging
from collections import Counter
from datetime import date, datetime, timedelta

from fieldnotify.domains.planned_notification.exceptions import ValidationError
from fieldnotify.domains.planned_notification.models import (
    DailyStatistics,
    NotificationStatus,
    PlannedNotification,
    StatisticsSummary,
)
from fieldnotify.domains.planned_notification.store import NotificationStore
from fieldnotify.utils.datetime import day_range, ensure_utc, local_date

logger = logging.getLogger(__name__)

MAX_DAILY_RANGE_DAYS = 366


def count_by_status(notifications: list[PlannedNotification]) -> dict[NotificationStatus, int]:
    """Count notifications per status, listing every status."""
    counts = Counter(item.status for item in notifications)
    return {status: counts.get(status, 0) for status in NotificationStatus}


def summarize(
    notifications: list[PlannedNotification],
    now: datetime,
    timezone: str = "UTC",
) -> StatisticsSummary:
    """Compute summary statistics for a snapshot.

    scheduled_today and scheduled_this_week count SCHEDULED notifications
    on the local day of now and in the seven days starting at local
    midnight. overdue counts SCHEDULED notifications already past now.

    Args:
        notifications: Snapshot to summarize.
        now: Reference time.
        timezone: IANA timezone for day boundaries.

    Returns:
        Summary statistics.
    """
    now = ensure_utc(now)
    today_start, today_end = day_range(local_date(now, timezone), timezone)
    week_end, _ = day_range(local_date(now, timezone) + timedelta(days=7), timezone)

    scheduled = [item for item in notifications if item.status == NotificationStatus.SCHEDULED]

    return StatisticsSummary(
        total=len(notifications),
        by_status=count_by_status(notifications),
        scheduled_today=sum(1 for item in scheduled if today_start <= item.scheduled_at < today_end),
        scheduled_this_week=sum(1 for item in scheduled if today_start <= item.scheduled_at < week_end),
        overdue=sum(1 for item in scheduled if item.scheduled_at < now),
    )


class StatisticsAggregator:
    """Derives counts and daily buckets from the notification store.

    Attributes:
        store: Notification store to read from.
        timezone: IANA timezone for day boundaries.
    """

    def __init__(self, store: NotificationStore, timezone: str = "UTC") -> None:
        self.store = store
        self.timezone = timezone

    async def summarize(self, now: datetime) -> StatisticsSummary:
        """Summary statistics for the current store contents."""
        return summarize(await self.store.list(), now, self.timezone)

    async def daily(self, start: date, end: date) -> list[DailyStatistics]:
        """Per-day counts for every day from start to end inclusive.

        Args:
            start: First local day.
            end: Last local day.

        Returns:
            One entry per day, including days without notifications.

        Raises:
            ValidationError: If end precedes start or the range is too long.
        """
        if end < start:
            raise ValidationError("end must not be before start")
        if (end - start).days >= MAX_DAILY_RANGE_DAYS:
            raise ValidationError(f"range must not exceed {MAX_DAILY_RANGE_DAYS} days")

        buckets: dict[date, list[PlannedNotification]] = {}
        for item in await self.store.list():
            day = local_date(item.scheduled_at, self.timezone)
            if start <= day <= end:
                buckets.setdefault(day, []).append(item)

        result = []
        day = start
        while day <= end:
            items = buckets.get(day, [])
            result.append(
                DailyStatistics(day=day, total=len(items), by_status=count_by_status(items))
            )
            day += timedelta(days=1)

        logger.debug("Computed daily statistics for %s..%s", start, end)
        return result
