# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions raised by the planned notification domain.

All errors derive from NotificationServiceError so callers can catch the
whole family at once. The API layer maps each subclass to an HTTP status.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from fieldnotify.domains.planned_notification.models import (
        LifecycleEvent,
        NotificationStatus,
        NotificationType,
    )


class NotificationServiceError(Exception):
    """Base exception for planned notification errors."""

    pass


class ValidationError(NotificationServiceError):
    """Raised when input is malformed (blank reason, past schedule, ...)."""

    pass


class NotFoundError(NotificationServiceError):
    """Raised when an operation references an unknown notification."""

    def __init__(self, notification_id: UUID) -> None:
        super().__init__(f"Planned notification {notification_id} not found")
        self.notification_id = notification_id


class InvalidTransitionError(NotificationServiceError):
    """Raised when a lifecycle event is not allowed from the current status.

    Attributes:
        notification_id: Notification the event was applied to.
        current_status: Status the notification was in.
        event: Rejected lifecycle event.
    """

    def __init__(
        self,
        notification_id: UUID,
        current_status: NotificationStatus,
        event: LifecycleEvent,
    ) -> None:
        super().__init__(
            f"Cannot apply {event.value} to planned notification {notification_id} "
            f"in status {current_status.value}"
        )
        self.notification_id = notification_id
        self.current_status = current_status
        self.event = event


class ConflictError(NotificationServiceError):
    """Raised when a write would create a second active automatic notification.

    Attributes:
        device_ref: Device of the conflicting pair.
        notification_type: Type of the conflicting pair.
        existing_id: Id of the active notification already holding the slot.
    """

    def __init__(
        self,
        device_ref: UUID | None,
        notification_type: NotificationType,
        existing_id: UUID | None = None,
    ) -> None:
        super().__init__(
            f"An active automatic {notification_type.value} notification already exists "
            f"for device {device_ref}"
        )
        self.device_ref = device_ref
        self.notification_type = notification_type
        self.existing_id = existing_id


class DependencyError(NotificationServiceError):
    """Raised when a referenced device or client snapshot cannot be resolved."""

    pass
