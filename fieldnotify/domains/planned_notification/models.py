# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for the planned notification domain.

This module defines Pydantic models and enums for:
- Notification status, type and provenance
- The PlannedNotification entity and its audit trail
- Write payloads (manual creation, patches) and list filters
- Device/client snapshots and the planning policy configuration
- Query pages, statistics and planning run results
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from math import ceil
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

from fieldnotify.utils.datetime import ensure_utc, utc_now

if TYPE_CHECKING:
    from fieldnotify.core.config.settings import PlanningSettings


class NotificationStatus(str, Enum):
    """Lifecycle status of a planned notification.

    SENT, CANCELLED and SKIPPED are terminal. FAILED is not terminal in the
    sense that a retry may spawn a new SCHEDULED notification from it.
    """

    SCHEDULED = "SCHEDULED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        """Whether no further lifecycle event is accepted."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {NotificationStatus.SENT, NotificationStatus.CANCELLED, NotificationStatus.SKIPPED}
)


class NotificationType(str, Enum):
    """What the notification is about."""

    INSPECTION_REMINDER = "INSPECTION_REMINDER"
    EXPIRATION_NOTIFICATION = "EXPIRATION_NOTIFICATION"
    MANUAL_CUSTOM = "MANUAL_CUSTOM"
    ADVERTISING = "ADVERTISING"


class PlannedSource(str, Enum):
    """Provenance of a planned notification.

    AUTOMATIC_* entries are owned by the planning engine and are subject to
    the one-active-per-(device, type) rule. MANUAL_* entries are created by
    users and never touched by refresh or force replan.
    """

    AUTOMATIC_INSPECTION = "AUTOMATIC_INSPECTION"
    AUTOMATIC_EXPIRATION = "AUTOMATIC_EXPIRATION"
    MANUAL_CUSTOM = "MANUAL_CUSTOM"
    MANUAL_ADVERTISING = "MANUAL_ADVERTISING"

    @property
    def is_automatic(self) -> bool:
        """Whether the entry was generated by the planning engine."""
        return self in (PlannedSource.AUTOMATIC_INSPECTION, PlannedSource.AUTOMATIC_EXPIRATION)


class LifecycleEvent(str, Enum):
    """Events recorded in a notification's audit trail."""

    CREATED = "CREATED"
    MARK_SENT = "MARK_SENT"
    MARK_FAILED = "MARK_FAILED"
    CANCEL = "CANCEL"
    SKIP = "SKIP"
    UPDATE = "UPDATE"
    RETRY = "RETRY"


class StatusChange(BaseModel):
    """One audit record of a lifecycle event."""

    event: LifecycleEvent
    from_status: NotificationStatus | None = None
    to_status: NotificationStatus
    reason: str | None = None
    occurred_at: datetime = Field(default_factory=utc_now)


class PlannedNotification(BaseModel):
    """A reminder or message awaiting (or past) delivery.

    Attributes:
        id: Unique identifier.
        device_ref: Device the notification is about (None for broadcasts).
        client_ref: Owning client (None if the device was removed).
        client_name: Client display name captured at planning time.
        device_name: Device display name captured at planning time.
        phone_number: Delivery address, opaque to this engine.
        message: Message body, opaque to this engine.
        scheduled_at: When the notification is due (UTC).
        status: Lifecycle status.
        notification_type: What the notification is about.
        planned_source: Provenance tag.
        inspection_due_date: Inspection cycle of an automatic entry.
        created_at: Creation time.
        updated_at: Time of the last change.
        sent_at: Delivery confirmation time.
        error_message: Last delivery error.
        retry_count: Failed delivery attempts so far.
        max_retries: Retry budget.
        superseded: Cancelled by a force replan rather than by a user.
        history: Audit trail of lifecycle events.
    """

    id: UUID = Field(default_factory=uuid4)
    device_ref: UUID | None = None
    client_ref: UUID | None = None
    client_name: str | None = None
    device_name: str | None = None
    phone_number: str
    message: str
    scheduled_at: datetime
    status: NotificationStatus = NotificationStatus.SCHEDULED
    notification_type: NotificationType
    planned_source: PlannedSource
    inspection_due_date: date | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    sent_at: datetime | None = None
    error_message: str | None = None
    retry_count: int = Field(default=0, ge=0)
    max_retries: int = Field(default=3, ge=0)
    superseded: bool = False
    history: list[StatusChange] = Field(default_factory=list)

    @field_validator("scheduled_at", "created_at", "updated_at", "sent_at")
    @classmethod
    def normalize_utc(cls, value: datetime | None) -> datetime | None:
        """Store every timestamp as aware UTC."""
        return ensure_utc(value)

    @model_validator(mode="after")
    def check_retry_budget(self) -> PlannedNotification:
        """Enforce retry_count <= max_retries."""
        if self.retry_count > self.max_retries:
            raise ValueError(
                f"retry_count {self.retry_count} exceeds max_retries {self.max_retries}"
            )
        return self

    @property
    def is_active(self) -> bool:
        """Whether the notification still awaits delivery."""
        return self.status == NotificationStatus.SCHEDULED

    @property
    def is_automatic(self) -> bool:
        """Whether the notification was generated by the planning engine."""
        return self.planned_source.is_automatic

    @property
    def dedup_key(self) -> tuple[UUID, NotificationType] | None:
        """Slot guarded by the one-active-per-(device, type) rule.

        Returns None for entries the rule does not apply to.
        """
        if not self.is_automatic or self.device_ref is None:
            return None
        return (self.device_ref, self.notification_type)

    @property
    def retries_exhausted(self) -> bool:
        """Whether no retry budget is left."""
        return self.retry_count >= self.max_retries


class ManualNotificationCreate(BaseModel):
    """Payload for a user-created notification."""

    phone_number: str
    message: str
    scheduled_at: datetime
    notification_type: NotificationType = NotificationType.MANUAL_CUSTOM
    client_ref: UUID | None = None
    device_ref: UUID | None = None
    client_name: str | None = None
    device_name: str | None = None
    max_retries: int | None = Field(default=None, ge=0)

    @field_validator("scheduled_at")
    @classmethod
    def normalize_utc(cls, value: datetime) -> datetime:
        """Store the schedule as aware UTC."""
        return ensure_utc(value)


class NotificationPatch(BaseModel):
    """Editable fields of a SCHEDULED notification.

    Only fields explicitly set by the caller are applied.
    """

    message: str | None = None
    phone_number: str | None = None
    scheduled_at: datetime | None = None

    @field_validator("scheduled_at")
    @classmethod
    def normalize_utc(cls, value: datetime | None) -> datetime | None:
        """Store the schedule as aware UTC."""
        return ensure_utc(value)

    def changes(self) -> dict[str, Any]:
        """Return the explicitly set, non-null fields."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }


class NotificationFilter(BaseModel):
    """Predicate used to list notifications from a store.

    Every criterion is optional; unset criteria match everything.
    scheduled_from is inclusive and scheduled_to is exclusive.
    """

    statuses: frozenset[NotificationStatus] | None = None
    client_ref: UUID | None = None
    device_ref: UUID | None = None
    notification_type: NotificationType | None = None
    planned_source: PlannedSource | None = None
    automatic: bool | None = None
    scheduled_from: datetime | None = None
    scheduled_to: datetime | None = None

    @field_validator("scheduled_from", "scheduled_to")
    @classmethod
    def normalize_utc(cls, value: datetime | None) -> datetime | None:
        """Compare bounds as aware UTC."""
        return ensure_utc(value)

    def matches(self, notification: PlannedNotification) -> bool:
        """Evaluate the filter against a single notification."""
        if self.statuses is not None and notification.status not in self.statuses:
            return False
        if self.client_ref is not None and notification.client_ref != self.client_ref:
            return False
        if self.device_ref is not None and notification.device_ref != self.device_ref:
            return False
        if (
            self.notification_type is not None
            and notification.notification_type != self.notification_type
        ):
            return False
        if self.planned_source is not None and notification.planned_source != self.planned_source:
            return False
        if self.automatic is not None and notification.is_automatic != self.automatic:
            return False
        if self.scheduled_from is not None and notification.scheduled_at < self.scheduled_from:
            return False
        if self.scheduled_to is not None and notification.scheduled_at >= self.scheduled_to:
            return False
        return True


class NotificationPage(BaseModel):
    """One zero-based page of notifications."""

    items: list[PlannedNotification]
    page: int
    size: int
    total_elements: int
    total_pages: int

    @classmethod
    def from_items(
        cls,
        items: list[PlannedNotification],
        page: int,
        size: int,
    ) -> NotificationPage:
        """Slice an already sorted list into the requested page."""
        start = page * size
        return cls(
            items=items[start:start + size],
            page=page,
            size=size,
            total_elements=len(items),
            total_pages=ceil(len(items) / size) if items else 0,
        )


class DeviceSnapshot(BaseModel):
    """Device state supplied by the device registry."""

    id: UUID
    inspection_due_date: date | None = None
    active: bool = True
    client_id: UUID | None = None
    display_name: str = ""


class ClientSnapshot(BaseModel):
    """Client state supplied by the client registry."""

    id: UUID
    name: str
    phone_number: str | None = None


class PolicyConfig(BaseModel):
    """Automatic planning policy.

    Attributes:
        reminder_days_ahead: Days before the due date the reminder is due.
        expiration_day_enabled: Plan a notice on the due date itself.
        reminders_enabled: Plan inspection reminders at all.
        max_retries: Retry budget of generated notifications.
        send_hour: Local hour automatic notifications are scheduled at.
        timezone: IANA timezone for calendar-day boundaries.
    """

    reminder_days_ahead: int = Field(default=14, ge=0)
    expiration_day_enabled: bool = True
    reminders_enabled: bool = True
    max_retries: int = Field(default=3, ge=0)
    send_hour: int = Field(default=9, ge=0, le=23)
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, settings: PlanningSettings) -> PolicyConfig:
        """Build the policy from planning settings."""
        return cls(
            reminder_days_ahead=settings.reminder_days_ahead,
            expiration_day_enabled=settings.expiration_day_enabled,
            reminders_enabled=settings.reminders_enabled,
            max_retries=settings.max_retries,
            send_hour=settings.send_hour,
            timezone=settings.timezone,
        )


class StatisticsSummary(BaseModel):
    """Counts derived from a snapshot of all notifications.

    total always equals the sum of by_status.
    """

    total: int
    by_status: dict[NotificationStatus, int]
    scheduled_today: int
    scheduled_this_week: int
    overdue: int


class DailyStatistics(BaseModel):
    """Per-day counts of notifications scheduled on that day."""

    day: date
    total: int
    by_status: dict[NotificationStatus, int]


class CandidateError(BaseModel):
    """A planning failure for one device, collected instead of raised."""

    device_id: UUID | None = None
    client_id: UUID | None = None
    notification_type: NotificationType | None = None
    error_type: str
    message: str


class RefreshResult(BaseModel):
    """Outcome of a planning run.

    Attributes:
        added_count: Notifications inserted.
        skipped_count: Candidates rejected as already planned.
        cancelled_count: Automatic notifications cancelled by a force replan.
        added_ids: Ids of the inserted notifications.
        errors: Per-candidate failures.
    """

    added_count: int = 0
    skipped_count: int = 0
    cancelled_count: int = 0
    added_ids: list[UUID] = Field(default_factory=list)
    errors: list[CandidateError] = Field(default_factory=list)

    def merge(self, other: RefreshResult) -> RefreshResult:
        """Combine two partial results."""
        return RefreshResult(
            added_count=self.added_count + other.added_count,
            skipped_count=self.skipped_count + other.skipped_count,
            cancelled_count=self.cancelled_count + other.cancelled_count,
            added_ids=[*self.added_ids, *other.added_ids],
            errors=[*self.errors, *other.errors],
        )
