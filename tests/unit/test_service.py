# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for PlannedNotificationService."""

from datetime import date, timedelta
from uuid import uuid4

import pytest

from fieldnotify.core.config import APISettings, PlanningSettings, Settings
from fieldnotify.domains.planned_notification import (
    InMemoryNotificationStore,
    InvalidTransitionError,
    ManualNotificationCreate,
    NotFoundError,
    NotificationPatch,
    NotificationStatus,
    NotificationType,
    PlannedNotificationService,
    PlannedSource,
    StaticSnapshotProvider,
    ValidationError,
)
from fieldnotify.domains.planned_notification.service import DEFAULT_CANCEL_REASON


def _entry(now, **overrides):
    data = {
        "phone_number": "+48600100200",
        "message": "Please confirm the visit",
        "scheduled_at": now + timedelta(days=1),
        "client_name": "Jan Kowalski",
    }
    data.update(overrides)
    return ManualNotificationCreate(**data)


class TestCreate:
    """Tests for manual creation."""

    @pytest.mark.asyncio
    async def test_create_custom(self, service, now):
        """Test that a custom manual notification is stored SCHEDULED."""
        created = await service.create(_entry(now, phone_number="  +48600100200 "))

        assert created.status == NotificationStatus.SCHEDULED
        assert created.planned_source == PlannedSource.MANUAL_CUSTOM
        assert created.phone_number == "+48600100200"
        assert created.max_retries == 3
        assert created.history[0].reason == "Created manually"
        assert await service.get(created.id) == created

    @pytest.mark.asyncio
    async def test_create_advertising(self, service, now):
        """Test that advertising gets its own provenance tag."""
        created = await service.create(
            _entry(now, notification_type=NotificationType.ADVERTISING, max_retries=0)
        )

        assert created.planned_source == PlannedSource.MANUAL_ADVERTISING
        assert created.max_retries == 0
        assert created.is_automatic is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [{"phone_number": "   "}, {"message": ""}],
    )
    async def test_blank_fields_rejected(self, service, now, overrides):
        """Test that phone number and message are required."""
        with pytest.raises(ValidationError):
            await service.create(_entry(now, **overrides))

    @pytest.mark.asyncio
    async def test_past_schedule_rejected(self, service, now):
        """Test that manual notifications cannot be scheduled in the past."""
        with pytest.raises(ValidationError):
            await service.create(_entry(now, scheduled_at=now - timedelta(minutes=1)))

    @pytest.mark.asyncio
    async def test_get_unknown(self, service):
        """Test that get raises NotFoundError for unknown ids."""
        with pytest.raises(NotFoundError):
            await service.get(uuid4())


class TestLifecycleCommands:
    """Tests for lifecycle commands through the service."""

    @pytest.mark.asyncio
    async def test_cancel_sent_rejected(self, service, now):
        """Test that cancelling a delivered notification fails and changes nothing."""
        created = await service.create(_entry(now))
        sent = await service.mark_sent(created.id)

        with pytest.raises(InvalidTransitionError):
            await service.cancel(created.id, "user requested")

        assert await service.get(created.id) == sent

    @pytest.mark.asyncio
    async def test_default_cancel_reason(self, service, now):
        """Test the reason used when the caller gives none."""
        created = await service.create(_entry(now))

        cancelled = await service.cancel(created.id)

        assert cancelled.history[-1].reason == DEFAULT_CANCEL_REASON

    @pytest.mark.asyncio
    async def test_fail_then_retry(self, service, now):
        """Test the manual retry flow."""
        created = await service.create(_entry(now))
        await service.mark_failed(created.id, "Gateway timeout")

        retried = await service.retry(created.id)

        assert retried.status == NotificationStatus.SCHEDULED
        assert retried.retry_count == 1
        assert (await service.get(created.id)).status == NotificationStatus.FAILED

    @pytest.mark.asyncio
    async def test_skip_update_and_delete(self, service, now):
        """Test the remaining commands."""
        first = await service.create(_entry(now))
        second = await service.create(_entry(now))

        updated = await service.update(first.id, NotificationPatch(message="Moved to Friday"))
        skipped = await service.skip(second.id, "Client on holiday")
        await service.delete(first.id)

        assert updated.message == "Moved to Friday"
        assert skipped.status == NotificationStatus.SKIPPED
        with pytest.raises(NotFoundError):
            await service.get(first.id)


class TestQueries:
    """Tests for queries that take "now" from the service clock."""

    @pytest.mark.asyncio
    async def test_windows_follow_clock(self, service, clock, now):
        """Test that moving the clock moves the windows."""
        created = await service.create(_entry(now, scheduled_at=now + timedelta(days=8)))

        assert await service.list_next_7_days() == []
        assert [item.id for item in await service.list_next_30_days()] == [created.id]

        clock.advance(days=2)

        assert [item.id for item in await service.list_next_7_days()] == [created.id]

    @pytest.mark.asyncio
    async def test_today_and_due(self, service, clock, now):
        """Test today's list and the due list."""
        created = await service.create(_entry(now, scheduled_at=now + timedelta(hours=1)))

        assert [item.id for item in await service.list_today()] == [created.id]
        assert await service.list_due() == []

        clock.advance(hours=1)

        assert [item.id for item in await service.list_due()] == [created.id]

    @pytest.mark.asyncio
    async def test_list_for_date_and_range(self, service, now):
        """Test explicit day and range queries."""
        created = await service.create(_entry(now, scheduled_at=now + timedelta(days=2)))

        on_day = await service.list_for_date(date(2025, 3, 12))
        in_range = await service.list_range(now, now + timedelta(days=3))

        assert [item.id for item in on_day] == [created.id]
        assert [item.id for item in in_range] == [created.id]

    @pytest.mark.asyncio
    async def test_search_and_list(self, service, now):
        """Test search and list pages."""
        await service.create(_entry(now, client_name="Anna Nowak"))
        kowalski = await service.create(_entry(now))

        found = await service.search("KOWALSKI")
        everything = await service.list(size=1)

        assert [item.id for item in found.items] == [kowalski.id]
        assert everything.total_elements == 2
        assert everything.total_pages == 2

    @pytest.mark.asyncio
    async def test_statistics(self, service, clock, now):
        """Test that statistics use the service clock."""
        await service.create(_entry(now, scheduled_at=now + timedelta(hours=1)))
        clock.advance(hours=2)

        summary = await service.statistics()
        daily = await service.daily_statistics(date(2025, 3, 10), date(2025, 3, 11))

        assert summary.total == 1
        assert summary.overdue == 1
        assert summary.scheduled_today == 1
        assert [bucket.total for bucket in daily] == [1, 0]


class TestCleanup:
    """Tests for retention cleanup."""

    @pytest.mark.asyncio
    async def test_cleanup_removes_old_terminal_entries(self, service, clock, now):
        """Test that only old SENT, CANCELLED and SKIPPED entries are removed."""
        sent = await service.create(_entry(now))
        await service.mark_sent(sent.id)
        cancelled = await service.create(_entry(now))
        await service.cancel(cancelled.id)
        failed = await service.create(_entry(now))
        await service.mark_failed(failed.id, "Gateway timeout")
        scheduled = await service.create(_entry(now, scheduled_at=now + timedelta(days=60)))

        clock.advance(days=31)
        recent = await service.create(_entry(clock.now))
        await service.skip(recent.id, "Not needed")

        deleted = await service.cleanup()

        remaining = {item.id for item in (await service.list(size=200)).items}
        assert deleted == 2
        assert remaining == {failed.id, scheduled.id, recent.id}

    @pytest.mark.asyncio
    async def test_cleanup_custom_age(self, service, clock, now):
        """Test an explicit retention period."""
        sent = await service.create(_entry(now))
        await service.mark_sent(sent.id)
        clock.advance(days=2)

        assert await service.cleanup(days_to_keep=5) == 0
        assert await service.cleanup(days_to_keep=1) == 1

    @pytest.mark.asyncio
    async def test_cleanup_negative_rejected(self, service):
        """Test that a negative retention period is rejected."""
        with pytest.raises(ValidationError):
            await service.cleanup(days_to_keep=-1)


class TestFromSettings:
    """Tests for building the service from settings."""

    def test_from_settings(self):
        """Test that policy, paging and retention come from settings."""
        settings = Settings(
            planning=PlanningSettings(
                reminder_days_ahead=7,
                send_hour=10,
                timezone="Europe/Warsaw",
                retention_days=90,
            ),
            api=APISettings(default_page_size=50, max_page_size=100),
        )

        service = PlannedNotificationService.from_settings(
            InMemoryNotificationStore(), StaticSnapshotProvider(), settings
        )

        assert service.config.reminder_days_ahead == 7
        assert service.config.send_hour == 10
        assert service.config.timezone == "Europe/Warsaw"
        assert service.retention_days == 90
        assert service.queries.default_page_size == 50
        assert service.queries.max_page_size == 100
        assert service.queries.timezone == "Europe/Warsaw"
