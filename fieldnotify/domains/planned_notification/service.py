# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Planned notification service.

This module provides the PlannedNotificationService class, the single entry
point used by the HTTP API and the periodic scheduler:
- Manual notification CRUD
- Lifecycle commands (cancel, mark sent/failed, skip, retry)
- Queries, search, time windows and statistics
- Automatic planning runs and retention cleanup

The service wires the store, lifecycle manager, query service, statistics
aggregator, policy engine and refresh coordinator together and supplies
"now" from its clock to every time-dependent read.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta
from uuid import UUID

from fieldnotify.core.config.settings import Settings
from fieldnotify.domains.planned_notification.exceptions import (
    NotFoundError,
    ValidationError,
)
from fieldnotify.domains.planned_notification.lifecycle import LifecycleManager
from fieldnotify.domains.planned_notification.models import (
    TERMINAL_STATUSES,
    DailyStatistics,
    ManualNotificationCreate,
    NotificationFilter,
    NotificationPage,
    NotificationPatch,
    NotificationStatus,
    NotificationType,
    PlannedNotification,
    PlannedSource,
    PolicyConfig,
    RefreshResult,
    StatisticsSummary,
)
from fieldnotify.domains.planned_notification.policy import (
    MessageComposer,
    PlanningResult,
    SchedulingPolicyEngine,
    default_message,
)
from fieldnotify.domains.planned_notification.query import QueryService, SortKey
from fieldnotify.domains.planned_notification.refresh import (
    RefreshCoordinator,
    SnapshotProvider,
)
from fieldnotify.domains.planned_notification.statistics import StatisticsAggregator
from fieldnotify.domains.planned_notification.store import NotificationStore
from fieldnotify.utils.datetime import utc_now

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Cancelled by user"

_SCHEDULED_ONLY = NotificationStatus.SCHEDULED


class PlannedNotificationService:
    """Service for managing planned notifications.

    Attributes:
        store: Notification store.
        config: Planning policy.
        clock: Source of the current time.
        retention_days: Default age for cleanup.
        lifecycle: Lifecycle manager.
        queries: Query service.
        statistics_aggregator: Statistics aggregator.
        engine: Scheduling policy engine.
        coordinator: Refresh coordinator.
    """

    def __init__(
        self,
        store: NotificationStore,
        snapshots: SnapshotProvider,
        config: PolicyConfig | None = None,
        clock: Callable[[], datetime] = utc_now,
        default_page_size: int = 20,
        max_page_size: int = 200,
        retention_days: int = 30,
        composer: MessageComposer = default_message,
    ) -> None:
        """Initialize planned notification service.

        Args:
            store: Notification store shared by all components.
            snapshots: Provider of device and client snapshots.
            config: Planning policy (defaults to PolicyConfig()).
            clock: Callable returning the current aware UTC time.
            default_page_size: Page size used when none is given.
            max_page_size: Largest accepted page size.
            retention_days: Default age for cleanup.
            composer: Message body builder for automatic notifications.
        """
        self.store = store
        self.config = config or PolicyConfig()
        self.clock = clock
        self.retention_days = retention_days

        self.lifecycle = LifecycleManager(store, clock)
        self.queries = QueryService(
            store,
            timezone=self.config.timezone,
            default_page_size=default_page_size,
            max_page_size=max_page_size,
        )
        self.statistics_aggregator = StatisticsAggregator(store, self.config.timezone)
        self.engine = SchedulingPolicyEngine(self.config, composer)
        self.coordinator = RefreshCoordinator(
            store, self.lifecycle, self.engine, snapshots, clock
        )

    @classmethod
    def from_settings(
        cls,
        store: NotificationStore,
        snapshots: SnapshotProvider,
        settings: Settings,
    ) -> PlannedNotificationService:
        """Build the service from application settings."""
        return cls(
            store,
            snapshots,
            config=PolicyConfig.from_settings(settings.planning),
            default_page_size=settings.api.default_page_size,
            max_page_size=settings.api.max_page_size,
            retention_days=settings.planning.retention_days,
        )

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, entry: ManualNotificationCreate) -> PlannedNotification:
        """Create a manual notification.

        Args:
            entry: Manual notification data.

        Returns:
            Created notification.

        Raises:
            ValidationError: If phone number or message is blank, or the
                schedule is in the past.
        """
        phone_number = (entry.phone_number or "").strip()
        message = (entry.message or "").strip()
        if not phone_number:
            raise ValidationError("phone_number must not be blank")
        if not message:
            raise ValidationError("message must not be blank")
        if entry.scheduled_at < self.clock():
            raise ValidationError("scheduled_at must not be in the past")

        source = (
            PlannedSource.MANUAL_ADVERTISING
            if entry.notification_type == NotificationType.ADVERTISING
            else PlannedSource.MANUAL_CUSTOM
        )
        notification = PlannedNotification(
            device_ref=entry.device_ref,
            client_ref=entry.client_ref,
            client_name=entry.client_name,
            device_name=entry.device_name,
            phone_number=phone_number,
            message=message,
            scheduled_at=entry.scheduled_at,
            notification_type=entry.notification_type,
            planned_source=source,
            max_retries=(
                self.config.max_retries if entry.max_retries is None else entry.max_retries
            ),
        )
        return await self.lifecycle.create(notification, reason="Created manually")

    async def get(self, notification_id: UUID) -> PlannedNotification:
        """Get a notification by id.

        Raises:
            NotFoundError: If the notification does not exist.
        """
        notification = await self.store.get(notification_id)
        if notification is None:
            raise NotFoundError(notification_id)
        return notification

    async def update(self, notification_id: UUID, patch: NotificationPatch) -> PlannedNotification:
        """Edit a SCHEDULED notification."""
        return await self.lifecycle.update(notification_id, patch)

    async def delete(self, notification_id: UUID) -> None:
        """Delete a notification in any status."""
        await self.lifecycle.delete(notification_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def cancel(
        self,
        notification_id: UUID,
        reason: str = DEFAULT_CANCEL_REASON,
    ) -> PlannedNotification:
        """Cancel a SCHEDULED notification on behalf of a user."""
        return await self.lifecycle.cancel(notification_id, reason)

    async def mark_sent(self, notification_id: UUID) -> PlannedNotification:
        """Record that the dispatcher delivered the notification."""
        return await self.lifecycle.mark_sent(notification_id)

    async def mark_failed(self, notification_id: UUID, error_message: str) -> PlannedNotification:
        """Record that the dispatcher failed to deliver the notification."""
        return await self.lifecycle.mark_failed(notification_id, error_message)

    async def skip(self, notification_id: UUID, reason: str) -> PlannedNotification:
        """Skip a SCHEDULED notification."""
        return await self.lifecycle.skip(notification_id, reason)

    async def retry(
        self,
        notification_id: UUID,
        scheduled_at: datetime | None = None,
    ) -> PlannedNotification:
        """Re-enqueue a FAILED notification. Returns the new notification."""
        return await self.lifecycle.retry(notification_id, scheduled_at)

    # =========================================================================
    # Queries
    # =========================================================================

    async def list(
        self,
        filter: NotificationFilter | None = None,
        page: int = 0,
        size: int | None = None,
        secondary: SortKey = SortKey.CLIENT_NAME,
        descending: bool = False,
    ) -> NotificationPage:
        """List notifications matching a filter."""
        return await self.queries.list(filter, page, size, secondary, descending)

    async def search(
        self,
        term: str,
        page: int = 0,
        size: int | None = None,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> NotificationPage:
        """Search notifications by client, phone, device or message."""
        return await self.queries.search(term, page, size, secondary)

    async def statistics(self) -> StatisticsSummary:
        """Summary statistics as of now."""
        return await self.statistics_aggregator.summarize(self.clock())

    async def daily_statistics(self, start: date, end: date) -> list[DailyStatistics]:
        """Per-day statistics from start to end inclusive."""
        return await self.statistics_aggregator.daily(start, end)

    async def list_today(
        self,
        status: NotificationStatus | None = _SCHEDULED_ONLY,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications scheduled today."""
        return await self.queries.list_today(self.clock(), status, secondary)

    async def list_next_7_days(
        self,
        status: NotificationStatus | None = _SCHEDULED_ONLY,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications scheduled in the coming 7 days."""
        return await self.queries.list_next_7_days(self.clock(), status, secondary)

    async def list_next_30_days(
        self,
        status: NotificationStatus | None = _SCHEDULED_ONLY,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications scheduled in the coming 30 days."""
        return await self.queries.list_next_30_days(self.clock(), status, secondary)

    async def list_range(
        self,
        start: datetime,
        end: datetime,
        status: NotificationStatus | None = _SCHEDULED_ONLY,
        secondary: SortKey = SortKey.CLIENT_NAME,
    ) -> list[PlannedNotification]:
        """Notifications with start <= scheduled_at < end."""
        return await self.queries.list_range(start, end, status, secondary)

    async def list_for_date(
        self,
        day: date,
        status: NotificationStatus | None = None,
    ) -> list[PlannedNotification]:
        """Notifications scheduled on a given day."""
        return await self.queries.list_for_date(day, status)

    async def list_due(self) -> list[PlannedNotification]:
        """SCHEDULED notifications whose time has come."""
        return await self.queries.list_due(self.clock())

    # =========================================================================
    # Planning
    # =========================================================================

    async def refresh_planning(self, days_ahead: int | None = None) -> RefreshResult:
        """Add missing automatic notifications."""
        return await self.coordinator.refresh_planning(days_ahead)

    async def force_replan(self, days_ahead: int | None = None) -> RefreshResult:
        """Cancel and recreate all SCHEDULED automatic notifications."""
        return await self.coordinator.force_replan(days_ahead)

    async def plan_inspection_reminders(self, days_ahead: int | None = None) -> RefreshResult:
        """Add missing inspection reminders."""
        return await self.coordinator.plan_inspection_reminders(days_ahead)

    async def plan_expiration_notifications(self) -> RefreshResult:
        """Add missing expiration-day notices."""
        return await self.coordinator.plan_expiration_notifications()

    async def preview_planning(self, days_ahead: int | None = None) -> PlanningResult:
        """Show what a refresh would do now, without writing."""
        return await self.coordinator.preview(days_ahead)

    async def cleanup(self, days_to_keep: int | None = None) -> int:
        """Delete SENT, CANCELLED and SKIPPED notifications older than the cutoff.

        Age is measured from the last change (updated_at).

        Args:
            days_to_keep: Retention period (defaults to retention_days).

        Returns:
            Number of deleted notifications.

        Raises:
            ValidationError: If days_to_keep is negative.
        """
        days_to_keep = self.retention_days if days_to_keep is None else days_to_keep
        if days_to_keep < 0:
            raise ValidationError("days_to_keep must be >= 0")

        cutoff = self.clock() - timedelta(days=days_to_keep)
        finished = await self.store.list(NotificationFilter(statuses=TERMINAL_STATUSES))

        deleted = 0
        for notification in finished:
            if notification.updated_at < cutoff and await self.store.delete(notification.id):
                deleted += 1

        logger.info(
            "Cleanup removed %d planned notifications older than %d days",
            deleted,
            days_to_keep,
        )
        return deleted
