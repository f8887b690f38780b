# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Read-only queries over planned notifications.

This module provides the QueryService class for:
- Paginated listing by status, client and device
- Free-text search over client, phone, device and message
- Named time windows (today, next 7 days, next 30 days, custom range)
- Due notifications for the external dispatcher

Time windows never read the wall clock: the caller passes "now", which
keeps results reproducible in tests and batch jobs.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from enum import Enum
from uuid import UUID

from fieldnotify.domains.planned_notification.exceptions import ValidationError
from fieldnotify.domains.planned_notification.models import (
    NotificationFilter,
    NotificationPage,
    NotificationStatus,
    PlannedNotification,
)
from fieldnotify.domains.planned_notification.store import NotificationStore
from fieldnotify.utils.datetime import day_range, ensure_utc, local_date

logger = logging.getLogger(__name__)


class SortKey(str, Enum):
    """Secondary sort keys used to break scheduled_at ties."""

    CLIENT_NAME = "client_name"
    STATUS = "status"
    TYPE = "type"


def sort_notifications(
    notifications: list[PlannedNotification],
    secondary: SortKey = SortKey.CLIENT_NAME,
    descending: bool = False,
) -> list[PlannedNotification]:
    """Order notifications by scheduled_at, then by the secondary key.

    The id is the last tie-breaker so the order is total.
    """

    def key(item: PlannedNotification) -> tuple:
        if secondary == SortKey.CLIENT_NAME:
            tie = (item.client_name or "").casefold()
        elif secondary == SortKey.STATUS:
            tie = item.status.value
        else:
            tie = item.notification_type.value
        return (item.scheduled_at, tie, str(item.id))

    return sorted(notifications, key=key, reverse=descending)


def matches_term(notification: PlannedNotification, term: str) -> bool:
    """Case-insensitive substring match over the searchable fields."""
    needle = term.casefold()
    return any(
        needle in value.casefold()
        for value in (
            notification.client_name,
            notification.phone_number,
            notification.device_name,
            notification.message,
        )
        if value
    )


_SCHEDULED_ONLY = NotificationStatus.SCHEDULED


class QueryService:
    """Service for querying planned notifications.

    Attributes:
        store: Notification store to read from.
        timezone: IANA timezone for calendar-day windows.
        default_page_size: Page size used when the caller gives none.
        max_page_size: Largest accepted page size.
    """

    def __init__(
        self,
        store: NotificationStore,
        timezone: str = "UTC",
        default_page_size: int = 20,
        max_page_size: int = 200,
    ) -> None:
        self.store = store
        self.timezone = timezone
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size

    async def list(
        self,
        filter: NotificationFilter | None = None,
        page: int = 0,
        size: int | None = None,
        secondary: SortKey = SortKey.CLIENT_NAME,
        descending: bool = False,
    ) -> NotificationPage:
        """List notifications matching a filter, one page at a time.

        Args:
            filter: Criteria to apply (None lists everything).
            page: Zero-based page number.
            size: Page size (defaults to default_page_size).
            secondary: Tie-breaker after scheduled_at.
            descending: Latest first instead of soonest first.

        Returns:
            Requested page.

        Raises:
            ValidationError: If page or size is out of range.
        """
        size = self._check_page(page, size)
        items = await self.store.list(filter)
        return NotificationPage.from_items(
            sort_notifications(items, secondary, descending), page, size
        )

    async def list_all(self, page: int = 0, size: int | None = None) -> NotificationPage:
        """List every notification."""
        return await self.list(None, page, size)

    async def list_by_status(
        self,
        status: NotificationStatus,
        page: int = 0,
        size: int | None = None,
    ) -> NotificationPage:
        """List notifications in one status."""
        return await self.list(NotificationFilter(statuses=frozenset({status})), page, size)

    async def list_by_client(
        self,
        client_ref: UUID,
        page: int = 0,
        size: int | None = None,
    ) -> NotificationPage:
        """List notifications of one client."""
        return await self.list(NotificationFilter(client_ref=client_ref), page, size)

    async def list_by_device(
        self,
        device_ref: UUID,
        page: int = 0,
        size: int | None = None,
    ) -> NotificationPage:
        """List notifications about one device."""
        return await self.list(NotificationFilter(device_ref=device_ref), page, size)

    async def search(
        self,
        term: str,
        page: int = 0,
        size: int | None = None,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> NotificationPage:
        """Search client name, phone number, device name and message.

        Matching is a case-insensitive substring test across all statuses.
        A blank term matches everything.
        """
        size = self._check_page(page, size)
        term = (term or "").strip()
        items = [item for item in await self.store.list() if matches_term(item, term)]

        logger.debug("Search %r matched %d planned notifications", term, len(items))
        return NotificationPage.from_items(sort_notifications(items, secondary), page, size)

    async def list_today(
        self,
        now: datetime,
        status: NotificationStatus | None = _SCHEDULED_ONLY,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications scheduled on the local calendar day of now."""
        return await self.list_for_date(local_date(now, self.timezone), status, secondary)

    async def list_for_date(
        self,
        day: date,
        status: NotificationStatus | None = None,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications scheduled on a given local calendar day."""
        start, end = day_range(day, self.timezone)
        return await self.list_range(start, end, status, secondary)

    async def list_next_7_days(
        self,
        now: datetime,
        status: NotificationStatus | None = _SCHEDULED_ONLY,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications with now <= scheduled_at < now + 7 days."""
        now = ensure_utc(now)
        return await self.list_range(now, now + timedelta(days=7), status, secondary)

    async def list_next_30_days(
        self,
        now: datetime,
        status: NotificationStatus | None = _SCHEDULED_ONLY,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications with now <= scheduled_at < now + 30 days."""
        now = ensure_utc(now)
        return await self.list_range(now, now + timedelta(days=30), status, secondary)

    async def list_range(
        self,
        start: datetime,
        end: datetime,
        status: NotificationStatus | None = _SCHEDULED_ONLY,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications with start <= scheduled_at < end.

        Args:
            start: Inclusive lower bound.
            end: Exclusive upper bound.
            status: Status to keep (None keeps every status).
            secondary: Tie-breaker after scheduled_at.

        Raises:
            ValidationError: If end is not after start.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if end <= start:
            raise ValidationError("end must be after start")

        items = await self.store.list(
            NotificationFilter(
                statuses=frozenset({status}) if status else None,
                scheduled_from=start,
                scheduled_to=end,
            )
        )
        return sort_notifications(items, secondary)

    async def list_due(self, now: datetime) -> list[PlannedNotification]:
        """SCHEDULED notifications whose time has come (scheduled_at <= now).

        This is what an external dispatcher picks up for delivery.
        """
        items = await self.store.list(
            NotificationFilter(statuses=frozenset({NotificationStatus.SCHEDULED}))
        )
        now = ensure_utc(now)
        return sort_notifications([item for item in items if item.scheduled_at <= now])

    def _check_page(self, page: int, size: int | None) -> int:
        """Validate pagination arguments and return the effective size."""
        size = self.default_page_size if size is None else size
        if page < 0:
            raise ValidationError("page must be >= 0")
        if size < 1 or size > self.max_page_size:
            raise ValidationError(f"size must be between 1 and {self.max_page_size}")
        return size
