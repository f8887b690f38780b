# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the lifecycle manager."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from fieldnotify.domains.planned_notification import (
    TRANSITIONS,
    InvalidTransitionError,
    LifecycleManager,
    NotFoundError,
    NotificationPatch,
    NotificationStatus,
    ValidationError,
)
from fieldnotify.domains.planned_notification.lifecycle import next_status
from fieldnotify.domains.planned_notification.models import LifecycleEvent


@pytest.fixture
def lifecycle(store, clock):
    """Provide a lifecycle manager over the in-memory store."""
    return LifecycleManager(store, clock)


class TestTransitionTable:
    """Tests for the allowed transitions."""

    @pytest.mark.parametrize("status", list(NotificationStatus))
    @pytest.mark.parametrize(
        "event",
        [event for event in LifecycleEvent if event != LifecycleEvent.CREATED],
    )
    def test_only_listed_transitions_allowed(self, status, event):
        """Test next_status agrees with the transition table for every pair."""
        expected = TRANSITIONS.get((status, event))

        assert next_status(status, event) == expected

    def test_terminal_statuses_accept_nothing(self):
        """Test that no event leaves SENT, CANCELLED or SKIPPED."""
        for status, _ in TRANSITIONS:
            assert not status.is_terminal

    def test_retry_keeps_failed_status(self):
        """Test that the retry event leaves the original FAILED."""
        assert (
            TRANSITIONS[(NotificationStatus.FAILED, LifecycleEvent.RETRY)]
            == NotificationStatus.FAILED
        )


class TestCreate:
    """Tests for LifecycleManager.create."""

    @pytest.mark.asyncio
    async def test_create_records_history(self, lifecycle, make_notification, now):
        """Test that create stamps times and a CREATED record."""
        created = await lifecycle.create(make_notification(), reason="Created manually")

        assert created.created_at == now
        assert created.updated_at == now
        assert len(created.history) == 1
        assert created.history[0].event == LifecycleEvent.CREATED
        assert created.history[0].to_status == NotificationStatus.SCHEDULED
        assert created.history[0].reason == "Created manually"

    @pytest.mark.asyncio
    async def test_create_requires_scheduled(self, lifecycle, make_notification):
        """Test that only SCHEDULED notifications can be created."""
        with pytest.raises(ValidationError):
            await lifecycle.create(make_notification(status=NotificationStatus.SENT))


class TestMarkSent:
    """Tests for LifecycleManager.mark_sent."""

    @pytest.mark.asyncio
    async def test_mark_sent(self, lifecycle, make_notification, clock):
        """Test SCHEDULED -> SENT sets sent_at and appends history."""
        created = await lifecycle.create(make_notification())
        clock.advance(hours=2)

        sent = await lifecycle.mark_sent(created.id)

        assert sent.status == NotificationStatus.SENT
        assert sent.sent_at == clock.now
        assert sent.updated_at == clock.now
        assert sent.history[-1].event == LifecycleEvent.MARK_SENT
        assert sent.history[-1].from_status == NotificationStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_mark_sent_on_cancelled_leaves_entity_unchanged(
        self, lifecycle, make_notification
    ):
        """Test that a rejected event does not modify the notification."""
        created = await lifecycle.create(make_notification())
        cancelled = await lifecycle.cancel(created.id, "No longer needed")

        with pytest.raises(InvalidTransitionError) as exc_info:
            await lifecycle.mark_sent(created.id)

        assert exc_info.value.current_status == NotificationStatus.CANCELLED
        assert exc_info.value.event == LifecycleEvent.MARK_SENT
        assert await lifecycle.store.get(created.id) == cancelled

    @pytest.mark.asyncio
    async def test_mark_sent_unknown(self, lifecycle):
        """Test that an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await lifecycle.mark_sent(uuid4())


class TestCancelAndSkip:
    """Tests for cancel and skip."""

    @pytest.mark.asyncio
    async def test_cancel_records_reason(self, lifecycle, make_notification):
        """Test that cancel keeps the reason in the audit trail."""
        created = await lifecycle.create(make_notification())

        cancelled = await lifecycle.cancel(created.id, "  Client moved  ")

        assert cancelled.status == NotificationStatus.CANCELLED
        assert cancelled.superseded is False
        assert cancelled.history[-1].reason == "Client moved"

    @pytest.mark.asyncio
    async def test_cancel_blank_reason_rejected(self, lifecycle, make_notification):
        """Test that a blank reason raises ValidationError."""
        created = await lifecycle.create(make_notification())

        with pytest.raises(ValidationError):
            await lifecycle.cancel(created.id, "   ")

        assert (await lifecycle.store.get(created.id)).status == NotificationStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_cancel_sent_rejected(self, lifecycle, make_notification):
        """Test that a delivered notification cannot be cancelled."""
        created = await lifecycle.create(make_notification())
        sent = await lifecycle.mark_sent(created.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.cancel(created.id, "Too late")

        assert await lifecycle.store.get(created.id) == sent

    @pytest.mark.asyncio
    async def test_skip(self, lifecycle, make_notification):
        """Test SCHEDULED -> SKIPPED."""
        created = await lifecycle.create(make_notification())

        skipped = await lifecycle.skip(created.id, "Device removed")

        assert skipped.status == NotificationStatus.SKIPPED
        assert skipped.history[-1].event == LifecycleEvent.SKIP

    @pytest.mark.asyncio
    async def test_skip_blank_reason_rejected(self, lifecycle, make_notification):
        """Test that skip requires a reason."""
        created = await lifecycle.create(make_notification())

        with pytest.raises(ValidationError):
            await lifecycle.skip(created.id, "")


class TestMarkFailed:
    """Tests for LifecycleManager.mark_failed."""

    @pytest.mark.asyncio
    async def test_mark_failed_increments_retry_count(self, lifecycle, make_notification):
        """Test that a failure consumes one retry and stores the error."""
        created = await lifecycle.create(make_notification())

        failed = await lifecycle.mark_failed(created.id, "Gateway timeout")

        assert failed.status == NotificationStatus.FAILED
        assert failed.retry_count == 1
        assert failed.error_message == "Gateway timeout"
        assert failed.history[-1].reason == "Gateway timeout"

    @pytest.mark.asyncio
    async def test_retry_count_capped(self, lifecycle, make_notification):
        """Test that retry_count never exceeds max_retries."""
        created = await lifecycle.create(make_notification(retry_count=2, max_retries=2))

        failed = await lifecycle.mark_failed(created.id, "Gateway timeout")

        assert failed.retry_count == 2

    @pytest.mark.asyncio
    async def test_blank_error_rejected(self, lifecycle, make_notification):
        """Test that mark_failed requires an error message."""
        created = await lifecycle.create(make_notification())

        with pytest.raises(ValidationError):
            await lifecycle.mark_failed(created.id, " ")


class TestRetry:
    """Tests for LifecycleManager.retry."""

    @pytest.mark.asyncio
    async def test_retry_creates_new_notification(self, lifecycle, make_notification, now):
        """Test that retry spawns a SCHEDULED copy and keeps the original FAILED."""
        created = await lifecycle.create(make_notification())
        await lifecycle.mark_failed(created.id, "Gateway timeout")

        retried = await lifecycle.retry(created.id)
        original = await lifecycle.store.get(created.id)

        assert retried.id != created.id
        assert retried.status == NotificationStatus.SCHEDULED
        assert retried.scheduled_at == now
        assert retried.retry_count == 1
        assert retried.error_message is None
        assert retried.history[0].reason == f"Retry of {created.id}"
        assert original.status == NotificationStatus.FAILED
        assert original.history[-1].event == LifecycleEvent.RETRY
        assert original.history[-1].reason == f"Retried as {retried.id}"

    @pytest.mark.asyncio
    async def test_retry_at_given_time(self, lifecycle, make_notification, now):
        """Test that retry honours an explicit schedule."""
        created = await lifecycle.create(make_notification())
        await lifecycle.mark_failed(created.id, "Gateway timeout")

        retried = await lifecycle.retry(created.id, now + timedelta(hours=3))

        assert retried.scheduled_at == now + timedelta(hours=3)

    @pytest.mark.asyncio
    async def test_retry_exhausted_rejected(self, lifecycle, make_notification):
        """Test that an exhausted notification cannot be retried."""
        created = await lifecycle.create(make_notification(max_retries=1))
        await lifecycle.mark_failed(created.id, "Gateway timeout")

        with pytest.raises(InvalidTransitionError):
            await lifecycle.retry(created.id)

        assert len(await lifecycle.store.list()) == 1

    @pytest.mark.asyncio
    async def test_retry_scheduled_rejected(self, lifecycle, make_notification):
        """Test that only FAILED notifications can be retried."""
        created = await lifecycle.create(make_notification())

        with pytest.raises(InvalidTransitionError):
            await lifecycle.retry(created.id)

    @pytest.mark.asyncio
    async def test_retry_in_past_rejected(self, lifecycle, make_notification, now):
        """Test that a retry cannot be scheduled in the past."""
        created = await lifecycle.create(make_notification())
        await lifecycle.mark_failed(created.id, "Gateway timeout")

        with pytest.raises(ValidationError):
            await lifecycle.retry(created.id, now - timedelta(minutes=1))


class TestUpdate:
    """Tests for LifecycleManager.update."""

    @pytest.mark.asyncio
    async def test_update_message(self, lifecycle, make_notification):
        """Test editing the message of a SCHEDULED notification."""
        created = await lifecycle.create(make_notification())

        updated = await lifecycle.update(created.id, NotificationPatch(message="New text"))

        assert updated.message == "New text"
        assert updated.status == NotificationStatus.SCHEDULED
        assert updated.history[-1].event == LifecycleEvent.UPDATE
        assert updated.history[-1].reason == "Updated message"

    @pytest.mark.asyncio
    async def test_update_past_schedule_rejected(self, lifecycle, make_notification, now):
        """Test that the schedule cannot be moved into the past."""
        created = await lifecycle.create(make_notification())

        with pytest.raises(ValidationError):
            await lifecycle.update(
                created.id, NotificationPatch(scheduled_at=now - timedelta(hours=1))
            )

    @pytest.mark.asyncio
    async def test_update_blank_phone_rejected(self, lifecycle, make_notification):
        """Test that the phone number cannot be blanked."""
        created = await lifecycle.create(make_notification())

        with pytest.raises(ValidationError):
            await lifecycle.update(created.id, NotificationPatch(phone_number=" "))

    @pytest.mark.asyncio
    async def test_update_sent_rejected(self, lifecycle, make_notification):
        """Test that a delivered notification cannot be edited."""
        created = await lifecycle.create(make_notification())
        await lifecycle.mark_sent(created.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.update(created.id, NotificationPatch(message="New text"))

    @pytest.mark.asyncio
    async def test_empty_patch_is_noop(self, lifecycle, make_notification):
        """Test that an empty patch changes nothing."""
        created = await lifecycle.create(make_notification())

        unchanged = await lifecycle.update(created.id, NotificationPatch())

        assert unchanged == created


class TestDelete:
    """Tests for LifecycleManager.delete."""

    @pytest.mark.asyncio
    async def test_delete_any_status(self, lifecycle, make_notification):
        """Test that terminal notifications can be deleted."""
        created = await lifecycle.create(make_notification())
        await lifecycle.mark_sent(created.id)

        await lifecycle.delete(created.id)

        assert await lifecycle.store.get(created.id) is None

    @pytest.mark.asyncio
    async def test_delete_unknown(self, lifecycle):
        """Test that deleting an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await lifecycle.delete(uuid4())


class TestConcurrentTransitions:
    """Tests for lifecycle events racing on one notification."""

    @pytest.fixture
    def racing(self, yielding_store, clock):
        return LifecycleManager(yielding_store, clock)

    @pytest.mark.asyncio
    async def test_second_terminal_event_rejected(self, racing, make_notification):
        """Test that only one of two racing terminal events is applied."""
        created = await racing.create(make_notification())

        sent, cancelled = await asyncio.gather(
            racing.mark_sent(created.id),
            racing.cancel(created.id, "user requested"),
            return_exceptions=True,
        )

        assert sent.status == NotificationStatus.SENT
        assert isinstance(cancelled, InvalidTransitionError)
        assert cancelled.current_status == NotificationStatus.SENT
        stored = await racing.store.get(created.id)
        assert stored == sent
        assert [change.event for change in stored.history] == [
            LifecycleEvent.CREATED,
            LifecycleEvent.MARK_SENT,
        ]

    @pytest.mark.asyncio
    async def test_racing_failures_consume_one_retry(self, racing, make_notification):
        """Test that a duplicate failure report does not count twice."""
        created = await racing.create(make_notification())

        results = await asyncio.gather(
            racing.mark_failed(created.id, "Gateway timeout"),
            racing.mark_failed(created.id, "Gateway timeout"),
            return_exceptions=True,
        )

        assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1
        stored = await racing.store.get(created.id)
        assert stored.status == NotificationStatus.FAILED
        assert stored.retry_count == 1

    @pytest.mark.asyncio
    async def test_racing_edits_keep_both_audit_records(self, racing, make_notification):
        """Test that concurrent edits of a SCHEDULED entry both reach the history."""
        created = await racing.create(make_notification())

        await asyncio.gather(
            racing.update(created.id, NotificationPatch(message="First")),
            racing.update(created.id, NotificationPatch(phone_number="+48600999888")),
        )

        stored = await racing.store.get(created.id)
        assert stored.status == NotificationStatus.SCHEDULED
        assert [change.event for change in stored.history] == [
            LifecycleEvent.CREATED,
            LifecycleEvent.UPDATE,
            LifecycleEvent.UPDATE,
        ]
