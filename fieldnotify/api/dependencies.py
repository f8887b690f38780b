# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

The application builds one PlannedNotificationService at startup and keeps
it on app.state; endpoints receive it through get_notification_service.
Tests replace it with app.dependency_overrides.

Example:
    @router.get("/statistics")
    async def get_statistics(
        service: PlannedNotificationService = Depends(get_notification_service),
    ):
        ...
"""

import logging

from fastapi import HTTPException, Request, status

from fieldnotify.core.config import Settings
from fieldnotify.domains.planned_notification import (
    InMemoryNotificationStore,
    NotificationStore,
    PlannedNotificationService,
    SnapshotProvider,
    StaticSnapshotProvider,
)
from fieldnotify.infrastructure.database import SqlAlchemyNotificationStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> NotificationStore:
    """Create the notification store selected by settings.storage_backend.

    The database backend expects init_database() to have been called.
    """
    if settings.storage_backend == "database":
        return SqlAlchemyNotificationStore()
    return InMemoryNotificationStore()


def build_service(
    settings: Settings,
    snapshots: SnapshotProvider | None = None,
    store: NotificationStore | None = None,
) -> PlannedNotificationService:
    """Create the planned notification service from settings.

    Args:
        settings: Application settings.
        snapshots: Device/client snapshot provider (defaults to an empty
            StaticSnapshotProvider).
        store: Notification store (defaults to build_store(settings)).

    Returns:
        Configured PlannedNotificationService.
    """
    service = PlannedNotificationService.from_settings(
        store or build_store(settings),
        snapshots or StaticSnapshotProvider(),
        settings,
    )
    logger.info("Planned notification service ready (%s store)", settings.storage_backend)
    return service


def get_notification_service(request: Request) -> PlannedNotificationService:
    """Get the application's planned notification service.

    Raises:
        HTTPException: 503 if the service has not been initialized.
    """
    service = getattr(request.app.state, "notification_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Planned notification service not initialized",
        )
    return service
