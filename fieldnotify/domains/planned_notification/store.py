# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Notification store contract and in-memory implementation.

The store is the only shared mutable resource of the engine. It guarantees
single-entity atomicity and enforces the one-active-per-(device, type) rule
for automatically planned notifications at write time, which makes repeated
planning runs safe without any locking in the callers. Status changes are
checked against the stored status inside the same atomic update, so two
racing lifecycle events cannot both succeed.

Example:
    store = InMemoryNotificationStore()
    await store.insert(notification)
    scheduled = await store.list(
        NotificationFilter(statuses=frozenset({NotificationStatus.SCHEDULED}))
    )
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import Any, Protocol
from uuid import UUID

from fieldnotify.domains.planned_notification.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
)
from fieldnotify.domains.planned_notification.models import (
    NotificationFilter,
    PlannedNotification,
    StatusChange,
)

logger = logging.getLogger(__name__)


class NotificationStore(Protocol):
    """Durable collection of planned notifications.

    Reads return detached snapshots; mutating a returned object never
    changes stored state.
    """

    async def get(self, notification_id: UUID) -> PlannedNotification | None:
        """Return the notification or None if unknown."""
        ...

    async def list(self, filter: NotificationFilter | None = None) -> list[PlannedNotification]:
        """Return all notifications matching the filter."""
        ...

    async def insert(self, notification: PlannedNotification) -> PlannedNotification:
        """Insert a new notification.

        Raises:
            ConflictError: If an active automatic notification already holds
                the (device, type) slot.
        """
        ...

    async def update(
        self,
        notification_id: UUID,
        patch: dict[str, Any],
        change: StatusChange | None = None,
    ) -> PlannedNotification:
        """Apply field changes to a notification and return the new state.

        When a status change is given, the stored status is compared with
        change.from_status and the record is appended to the history in
        the same atomic step.

        Raises:
            NotFoundError: If the notification does not exist.
            InvalidTransitionError: If the stored status differs from
                change.from_status.
            ConflictError: If the change would violate the dedup rule.
        """
        ...

    async def delete(self, notification_id: UUID) -> bool:
        """Remove a notification. Returns False if it did not exist."""
        ...


def find_conflict(
    candidate: PlannedNotification,
    existing: Iterable[PlannedNotification],
) -> PlannedNotification | None:
    """Find an active automatic notification occupying the candidate's slot.

    Args:
        candidate: Notification about to be written.
        existing: Notifications currently stored.

    Returns:
        The conflicting notification, or None if the write is allowed.
    """
    key = candidate.dedup_key
    if key is None or not candidate.is_active:
        return None

    for other in existing:
        if other.id != candidate.id and other.is_active and other.dedup_key == key:
            return other
    return None


def apply_patch(
    current: PlannedNotification,
    patch: dict[str, Any],
    change: StatusChange | None = None,
) -> PlannedNotification:
    """Merge a patch into a notification and record the status change.

    Args:
        current: Notification as currently stored.
        patch: Field changes.
        change: Audit record of the lifecycle event, if any.

    Returns:
        The patched notification.

    Raises:
        InvalidTransitionError: If the notification left change.from_status
            after the caller read it.
    """
    data = {**current.model_dump(), **patch, "id": current.id}
    if change is not None:
        if change.from_status is not None and current.status != change.from_status:
            raise InvalidTransitionError(current.id, current.status, change.event)
        data["status"] = change.to_status
        data["history"] = [*current.history, change.model_copy()]
    return PlannedNotification.model_validate(data)


class InMemoryNotificationStore:
    """Process-local NotificationStore.

    Each instance owns its data, so tests and demos can run several
    independent stores side by side.

    Attributes:
        _items: Stored notifications keyed by id.
        _lock: Serializes check-then-write sequences.
    """

    def __init__(self, initial: Iterable[PlannedNotification] | None = None) -> None:
        """Initialize the store.

        Args:
            initial: Notifications to preload. They must satisfy the
                dedup rule among themselves.

        Raises:
            ConflictError: If the initial data violates the dedup rule.
        """
        self._items: dict[UUID, PlannedNotification] = {}
        self._lock = asyncio.Lock()

        for notification in initial or ():
            self._check_conflict(notification)
            self._items[notification.id] = notification.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._items)

    async def get(self, notification_id: UUID) -> PlannedNotification | None:
        item = self._items.get(notification_id)
        return item.model_copy(deep=True) if item else None

    async def list(self, filter: NotificationFilter | None = None) -> list[PlannedNotification]:
        return [
            item.model_copy(deep=True)
            for item in self._items.values()
            if filter is None or filter.matches(item)
        ]

    async def insert(self, notification: PlannedNotification) -> PlannedNotification:
        async with self._lock:
            if notification.id in self._items:
                raise ValueError(f"Planned notification {notification.id} already stored")
            self._check_conflict(notification)
            self._items[notification.id] = notification.model_copy(deep=True)

        logger.debug("Stored planned notification %s", notification.id)
        return notification.model_copy(deep=True)

    async def update(
        self,
        notification_id: UUID,
        patch: dict[str, Any],
        change: StatusChange | None = None,
    ) -> PlannedNotification:
        async with self._lock:
            current = self._items.get(notification_id)
            if current is None:
                raise NotFoundError(notification_id)

            updated = apply_patch(current, patch, change)
            self._check_conflict(updated)
            self._items[notification_id] = updated

        return updated.model_copy(deep=True)

    async def delete(self, notification_id: UUID) -> bool:
        async with self._lock:
            return self._items.pop(notification_id, None) is not None

    def _check_conflict(self, notification: PlannedNotification) -> None:
        """Raise ConflictError if the notification's slot is taken."""
        conflict = find_conflict(notification, self._items.values())
        if conflict is not None:
            raise ConflictError(
                device_ref=notification.device_ref,
                notification_type=notification.notification_type,
                existing_id=conflict.id,
            )
