# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Lifecycle manager for planned notifications.

This module provides the LifecycleManager class, the only component that
changes a notification's status. Allowed moves are listed in TRANSITIONS:

    SCHEDULED --mark_sent--> SENT
    SCHEDULED --mark_failed--> FAILED
    SCHEDULED --cancel--> CANCELLED
    SCHEDULED --skip--> SKIPPED
    SCHEDULED --update--> SCHEDULED
    FAILED --retry--> FAILED (and a new SCHEDULED notification)

Everything else raises InvalidTransitionError and leaves the notification
unchanged. Every accepted event refreshes updated_at and appends a
StatusChange to the notification's history.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from fieldnotify.domains.planned_notification.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from fieldnotify.domains.planned_notification.models import (
    LifecycleEvent,
    NotificationPatch,
    NotificationStatus,
    PlannedNotification,
    StatusChange,
)
from fieldnotify.domains.planned_notification.store import NotificationStore
from fieldnotify.utils.datetime import ensure_utc, utc_now
from fieldnotify.utils.logging import get_logger

logger = get_logger(__name__)


TRANSITIONS: dict[tuple[NotificationStatus, LifecycleEvent], NotificationStatus] = {
    (NotificationStatus.SCHEDULED, LifecycleEvent.MARK_SENT): NotificationStatus.SENT,
    (NotificationStatus.SCHEDULED, LifecycleEvent.MARK_FAILED): NotificationStatus.FAILED,
    (NotificationStatus.SCHEDULED, LifecycleEvent.CANCEL): NotificationStatus.CANCELLED,
    (NotificationStatus.SCHEDULED, LifecycleEvent.SKIP): NotificationStatus.SKIPPED,
    (NotificationStatus.SCHEDULED, LifecycleEvent.UPDATE): NotificationStatus.SCHEDULED,
    (NotificationStatus.FAILED, LifecycleEvent.RETRY): NotificationStatus.FAILED,
}


def next_status(current: NotificationStatus, event: LifecycleEvent) -> NotificationStatus | None:
    """Look up the status an event leads to.

    Args:
        current: Current status.
        event: Lifecycle event to apply.

    Returns:
        Target status, or None if the event is not allowed.
    """
    return TRANSITIONS.get((current, event))


def _require_text(value: str | None, field: str) -> str:
    """Return the stripped value or raise ValidationError if blank."""
    if value is None or not value.strip():
        raise ValidationError(f"{field} must not be blank")
    return value.strip()


class LifecycleManager:
    """Applies lifecycle events to stored notifications.

    Attributes:
        store: Notification store.
        clock: Source of the current time.
    """

    def __init__(
        self,
        store: NotificationStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize lifecycle manager.

        Args:
            store: Notification store to mutate.
            clock: Callable returning the current aware UTC time.
        """
        self.store = store
        self.clock = clock

    async def create(
        self,
        notification: PlannedNotification,
        reason: str | None = None,
    ) -> PlannedNotification:
        """Persist a new SCHEDULED notification with a CREATED audit record.

        Args:
            notification: Notification to store.
            reason: Optional note kept in the audit record.

        Returns:
            Stored notification.

        Raises:
            ValidationError: If the notification is not SCHEDULED.
            ConflictError: If the dedup rule rejects it.
        """
        if notification.status != NotificationStatus.SCHEDULED:
            raise ValidationError("New planned notifications must start as SCHEDULED")

        now = self.clock()
        record = StatusChange(
            event=LifecycleEvent.CREATED,
            to_status=NotificationStatus.SCHEDULED,
            reason=reason,
            occurred_at=now,
        )
        stored = await self.store.insert(
            notification.model_copy(
                update={
                    "created_at": now,
                    "updated_at": now,
                    "history": [*notification.history, record],
                }
            )
        )

        logger.info(
            "planned_notification_created",
            notification_id=stored.id,
            notification_type=stored.notification_type,
            planned_source=stored.planned_source,
        )
        return stored

    async def mark_sent(self, notification_id: UUID) -> PlannedNotification:
        """Record a delivery confirmation.

        Raises:
            NotFoundError: If the notification does not exist.
            InvalidTransitionError: If it is not SCHEDULED.
        """
        now = self.clock()
        return await self._apply(
            notification_id,
            LifecycleEvent.MARK_SENT,
            changes={"sent_at": now, "error_message": None},
            now=now,
        )

    async def mark_failed(self, notification_id: UUID, error_message: str) -> PlannedNotification:
        """Record a delivery failure and consume one retry.

        The retry counter never exceeds max_retries.

        Raises:
            ValidationError: If error_message is blank.
            NotFoundError: If the notification does not exist.
            InvalidTransitionError: If it is not SCHEDULED.
        """
        error = _require_text(error_message, "error_message")
        current = await self._get(notification_id)
        self._check(current, LifecycleEvent.MARK_FAILED)

        return await self._apply(
            notification_id,
            LifecycleEvent.MARK_FAILED,
            changes={
                "error_message": error,
                "retry_count": min(current.retry_count + 1, current.max_retries),
            },
            reason=error,
            current=current,
        )

    async def cancel(
        self,
        notification_id: UUID,
        reason: str,
        superseded: bool = False,
    ) -> PlannedNotification:
        """Cancel a SCHEDULED notification.

        Args:
            notification_id: Notification to cancel.
            reason: Why it is cancelled (required).
            superseded: True when a force replan replaces the notification.

        Raises:
            ValidationError: If reason is blank.
            NotFoundError: If the notification does not exist.
            InvalidTransitionError: If it is not SCHEDULED.
        """
        text = _require_text(reason, "reason")
        return await self._apply(
            notification_id,
            LifecycleEvent.CANCEL,
            changes={"superseded": superseded},
            reason=text,
        )

    async def skip(self, notification_id: UUID, reason: str) -> PlannedNotification:
        """Skip a SCHEDULED notification, e.g. when its target disappeared.

        Raises:
            ValidationError: If reason is blank.
            NotFoundError: If the notification does not exist.
            InvalidTransitionError: If it is not SCHEDULED.
        """
        text = _require_text(reason, "reason")
        return await self._apply(notification_id, LifecycleEvent.SKIP, reason=text)

    async def update(self, notification_id: UUID, patch: NotificationPatch) -> PlannedNotification:
        """Edit message, phone number or schedule of a SCHEDULED notification.

        Raises:
            ValidationError: If a field is blank or the schedule is in the past.
            NotFoundError: If the notification does not exist.
            InvalidTransitionError: If it is not SCHEDULED.
        """
        current = await self._get(notification_id)
        self._check(current, LifecycleEvent.UPDATE)

        changes = patch.changes()
        if "message" in changes:
            changes["message"] = _require_text(changes["message"], "message")
        if "phone_number" in changes:
            changes["phone_number"] = _require_text(changes["phone_number"], "phone_number")

        now = self.clock()
        if "scheduled_at" in changes and changes["scheduled_at"] < now:
            raise ValidationError("scheduled_at must not be in the past")

        if not changes:
            return current

        return await self._apply(
            notification_id,
            LifecycleEvent.UPDATE,
            changes=changes,
            reason="Updated " + ", ".join(sorted(changes)),
            current=current,
            now=now,
        )

    async def retry(
        self,
        notification_id: UUID,
        scheduled_at: datetime | None = None,
    ) -> PlannedNotification:
        """Re-enqueue a FAILED notification as a new SCHEDULED one.

        The failed notification stays FAILED (with a RETRY audit record); the
        new notification inherits its payload and retry counter.

        Args:
            notification_id: FAILED notification to retry.
            scheduled_at: When to attempt again (defaults to now).

        Returns:
            The new SCHEDULED notification.

        Raises:
            NotFoundError: If the notification does not exist.
            InvalidTransitionError: If it is not FAILED or its retry budget
                is exhausted.
            ConflictError: If an active automatic notification already
                holds the slot.
        """
        current = await self._get(notification_id)
        self._check(current, LifecycleEvent.RETRY)
        if current.retries_exhausted:
            raise InvalidTransitionError(notification_id, current.status, LifecycleEvent.RETRY)

        now = self.clock()
        when = ensure_utc(scheduled_at) if scheduled_at else now
        if when < now:
            raise ValidationError("scheduled_at must not be in the past")

        replacement = current.model_copy(
            update={
                "id": uuid4(),
                "status": NotificationStatus.SCHEDULED,
                "scheduled_at": when,
                "sent_at": None,
                "error_message": None,
                "superseded": False,
                "history": [],
            }
        )
        created = await self.create(replacement, reason=f"Retry of {notification_id}")

        await self._apply(
            notification_id,
            LifecycleEvent.RETRY,
            reason=f"Retried as {created.id}",
            current=current,
            now=now,
        )
        return created

    async def delete(self, notification_id: UUID) -> None:
        """Remove a notification regardless of its status.

        Raises:
            NotFoundError: If the notification does not exist.
        """
        if not await self.store.delete(notification_id):
            raise NotFoundError(notification_id)

        logger.info("planned_notification_deleted", notification_id=notification_id)

    async def _get(self, notification_id: UUID) -> PlannedNotification:
        """Load a notification or raise NotFoundError."""
        notification = await self.store.get(notification_id)
        if notification is None:
            raise NotFoundError(notification_id)
        return notification

    @staticmethod
    def _check(notification: PlannedNotification, event: LifecycleEvent) -> NotificationStatus:
        """Return the target status or raise InvalidTransitionError."""
        target = next_status(notification.status, event)
        if target is None:
            raise InvalidTransitionError(notification.id, notification.status, event)
        return target

    async def _apply(
        self,
        notification_id: UUID,
        event: LifecycleEvent,
        changes: dict[str, Any] | None = None,
        reason: str | None = None,
        current: PlannedNotification | None = None,
        now: datetime | None = None,
    ) -> PlannedNotification:
        """Validate and persist a lifecycle event.

        The early check rejects illegal events without a write. The store
        repeats it atomically, so an event racing another one on the same
        notification fails with InvalidTransitionError instead of
        overwriting it.
        """
        if current is None:
            current = await self._get(notification_id)
        target = self._check(current, event)
        now = now or self.clock()

        record = StatusChange(
            event=event,
            from_status=current.status,
            to_status=target,
            reason=reason,
            occurred_at=now,
        )
        updated = await self.store.update(
            notification_id,
            {**(changes or {}), "updated_at": now},
            change=record,
        )

        logger.info(
            "planned_notification_transition",
            notification_id=notification_id,
            lifecycle_event=event,
            from_status=current.status,
            to_status=target,
        )
        return updated
