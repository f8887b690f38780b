# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Planned notification API endpoints.

This module provides endpoints for planned notifications:
- POST / - Create a manual notification
- GET / - List notifications with filters and pagination
- GET /search - Free-text search
- GET /statistics, GET /statistics/daily - Counts
- GET /today, /next-7-days, /next-30-days, /range, /due - Time windows
- GET, PUT, DELETE /{notification_id} - Single notification
- PUT /{notification_id}/cancel, /mark-sent, /mark-failed, /skip - Lifecycle
- POST /{notification_id}/retry - Re-enqueue a failed notification
- POST /refresh-planning, /force-replan - Automatic planning runs
- POST /plan-inspection-reminders, /plan-expiration-notifications
- GET /planning-preview - Dry run of the planning policy
- POST /cleanup - Retention cleanup
"""

import logging
from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from fieldnotify.api.dependencies import get_notification_service
from fieldnotify.domains.planned_notification import (
    ConflictError,
    DependencyError,
    InvalidTransitionError,
    ManualNotificationCreate,
    NotFoundError,
    NotificationFilter,
    NotificationPage,
    NotificationPatch,
    NotificationServiceError,
    NotificationStatus,
    NotificationType,
    PlannedNotification,
    PlannedNotificationService,
    PlannedSource,
    PlanningResult,
    RefreshResult,
    SortKey,
    StatisticsSummary,
    ValidationError,
)
from fieldnotify.domains.planned_notification.models import DailyStatistics
from fieldnotify.models.planned_notification import (
    CancelRequest,
    CleanupResponse,
    MarkFailedRequest,
    RetryRequest,
    SkipRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

Service = Annotated[PlannedNotificationService, Depends(get_notification_service)]

_ERROR_STATUS = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (DependencyError, status.HTTP_424_FAILED_DEPENDENCY),
)


def _http_error(error: NotificationServiceError) -> HTTPException:
    """Map a domain error to an HTTP error."""
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))


def _window_status(all_statuses: bool) -> NotificationStatus | None:
    return None if all_statuses else NotificationStatus.SCHEDULED


# =============================================================================
# Collection
# =============================================================================


@router.post(
    "",
    response_model=PlannedNotification,
    status_code=status.HTTP_201_CREATED,
    summary="Create planned notification",
    description="Create a manual notification scheduled for a future time.",
)
async def create_notification(data: ManualNotificationCreate, service: Service) -> PlannedNotification:
    """Create a manual notification.

    Raises:
        HTTPException: 422 if the payload is blank or scheduled in the past.
    """
    logger.info("Creating %s notification for %s", data.notification_type.value, data.scheduled_at)

    try:
        return await service.create(data)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.get(
    "",
    response_model=NotificationPage,
    summary="List planned notifications",
)
async def list_notifications(
    service: Service,
    status_filter: Annotated[
        list[NotificationStatus] | None, Query(alias="status", description="Statuses to include")
    ] = None,
    client_ref: UUID | None = None,
    device_ref: UUID | None = None,
    notification_type: NotificationType | None = None,
    planned_source: PlannedSource | None = None,
    automatic: bool | None = None,
    page: Annotated[int, Query(ge=0)] = 0,
    size: Annotated[int | None, Query(ge=1)] = None,
    sort: SortKey = SortKey.CLIENT_NAME,
    descending: bool = False,
) -> NotificationPage:
    """List notifications ordered by scheduled time."""
    filter = NotificationFilter(
        statuses=frozenset(status_filter) if status_filter else None,
        client_ref=client_ref,
        device_ref=device_ref,
        notification_type=notification_type,
        planned_source=planned_source,
        automatic=automatic,
    )

    try:
        return await service.list(filter, page, size, sort, descending)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.get("/search", response_model=NotificationPage, summary="Search planned notifications")
async def search_notifications(
    service: Service,
    q: Annotated[str, Query(description="Client name, phone, device name or message text")] = "",
    page: Annotated[int, Query(ge=0)] = 0,
    size: Annotated[int | None, Query(ge=1)] = None,
    sort: SortKey = SortKey.CLIENT_NAME,
) -> NotificationPage:
    """Search across all statuses."""
    try:
        return await service.search(q, page, size, sort)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.get("/statistics", response_model=StatisticsSummary, summary="Get statistics")
async def get_statistics(service: Service) -> StatisticsSummary:
    """Counts by status plus today, this week and overdue."""
    return await service.statistics()


@router.get(
    "/statistics/daily",
    response_model=list[DailyStatistics],
    summary="Get daily statistics",
)
async def get_daily_statistics(
    service: Service,
    start: date,
    end: date,
) -> list[DailyStatistics]:
    """Per-day counts from start to end inclusive."""
    try:
        return await service.daily_statistics(start, end)
    except NotificationServiceError as e:
        raise _http_error(e) from e


# =============================================================================
# Time windows
# =============================================================================


@router.get("/today", response_model=list[PlannedNotification], summary="Scheduled today")
async def list_today(
    service: Service,
    all_statuses: bool = False,
    sort: SortKey = SortKey.CLIENT_NAME,
) -> list[PlannedNotification]:
    return await service.list_today(_window_status(all_statuses), sort)


@router.get("/next-7-days", response_model=list[PlannedNotification], summary="Next 7 days")
async def list_next_7_days(
    service: Service,
    all_statuses: bool = False,
    sort: SortKey = SortKey.CLIENT_NAME,
) -> list[PlannedNotification]:
    return await service.list_next_7_days(_window_status(all_statuses), sort)


@router.get("/next-30-days", response_model=list[PlannedNotification], summary="Next 30 days")
async def list_next_30_days(
    service: Service,
    all_statuses: bool = False,
    sort: SortKey = SortKey.CLIENT_NAME,
) -> list[PlannedNotification]:
    return await service.list_next_30_days(_window_status(all_statuses), sort)


@router.get("/range", response_model=list[PlannedNotification], summary="Custom time range")
async def list_range(
    service: Service,
    start: datetime,
    end: datetime,
    all_statuses: bool = False,
    sort: SortKey = SortKey.CLIENT_NAME,
) -> list[PlannedNotification]:
    """Notifications with start <= scheduled_at < end."""
    try:
        return await service.list_range(start, end, _window_status(all_statuses), sort)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.get("/due", response_model=list[PlannedNotification], summary="Due for delivery")
async def list_due(service: Service) -> list[PlannedNotification]:
    """SCHEDULED notifications whose time has come."""
    return await service.list_due()


# =============================================================================
# Planning
# =============================================================================


@router.post("/refresh-planning", response_model=RefreshResult, summary="Refresh planning")
async def refresh_planning(
    service: Service,
    days_ahead: Annotated[int | None, Query(ge=0, le=365)] = None,
) -> RefreshResult:
    """Add missing automatic notifications."""
    try:
        return await service.refresh_planning(days_ahead)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.post("/force-replan", response_model=RefreshResult, summary="Force replan")
async def force_replan(
    service: Service,
    days_ahead: Annotated[int | None, Query(ge=0, le=365)] = None,
) -> RefreshResult:
    """Cancel and recreate all SCHEDULED automatic notifications."""
    logger.info("Force replan requested (days_ahead=%s)", days_ahead)

    try:
        return await service.force_replan(days_ahead)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.post(
    "/plan-inspection-reminders",
    response_model=RefreshResult,
    summary="Plan inspection reminders",
)
async def plan_inspection_reminders(
    service: Service,
    days_ahead: Annotated[int | None, Query(ge=0, le=365)] = None,
) -> RefreshResult:
    try:
        return await service.plan_inspection_reminders(days_ahead)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.post(
    "/plan-expiration-notifications",
    response_model=RefreshResult,
    summary="Plan expiration notifications",
)
async def plan_expiration_notifications(service: Service) -> RefreshResult:
    try:
        return await service.plan_expiration_notifications()
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.get("/planning-preview", response_model=PlanningResult, summary="Preview planning")
async def preview_planning(
    service: Service,
    days_ahead: Annotated[int | None, Query(ge=0, le=365)] = None,
) -> PlanningResult:
    """What a refresh would add now, with a reason per device."""
    try:
        return await service.preview_planning(days_ahead)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.post("/cleanup", response_model=CleanupResponse, summary="Retention cleanup")
async def cleanup(
    service: Service,
    days_to_keep: Annotated[int | None, Query(ge=0)] = None,
) -> CleanupResponse:
    """Delete finished notifications older than days_to_keep."""
    days = service.retention_days if days_to_keep is None else days_to_keep

    try:
        deleted = await service.cleanup(days)
    except NotificationServiceError as e:
        raise _http_error(e) from e

    return CleanupResponse(deleted_count=deleted, days_to_keep=days)


# =============================================================================
# Single notification
# =============================================================================


@router.get(
    "/{notification_id}",
    response_model=PlannedNotification,
    summary="Get planned notification",
)
async def get_notification(notification_id: UUID, service: Service) -> PlannedNotification:
    try:
        return await service.get(notification_id)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.put(
    "/{notification_id}",
    response_model=PlannedNotification,
    summary="Update planned notification",
    description="Edit message, phone number or schedule while SCHEDULED.",
)
async def update_notification(
    notification_id: UUID,
    data: NotificationPatch,
    service: Service,
) -> PlannedNotification:
    try:
        return await service.update(notification_id, data)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.delete(
    "/{notification_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete planned notification",
)
async def delete_notification(notification_id: UUID, service: Service) -> Response:
    logger.info("Deleting planned notification %s", notification_id)

    try:
        await service.delete(notification_id)
    except NotificationServiceError as e:
        raise _http_error(e) from e

    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.put(
    "/{notification_id}/cancel",
    response_model=PlannedNotification,
    summary="Cancel planned notification",
)
async def cancel_notification(
    notification_id: UUID,
    service: Service,
    data: CancelRequest | None = None,
) -> PlannedNotification:
    reason = data.reason if data else CancelRequest().reason

    try:
        return await service.cancel(notification_id, reason)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.put(
    "/{notification_id}/mark-sent",
    response_model=PlannedNotification,
    summary="Mark as sent",
)
async def mark_sent(notification_id: UUID, service: Service) -> PlannedNotification:
    try:
        return await service.mark_sent(notification_id)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.put(
    "/{notification_id}/mark-failed",
    response_model=PlannedNotification,
    summary="Mark as failed",
)
async def mark_failed(
    notification_id: UUID,
    data: MarkFailedRequest,
    service: Service,
) -> PlannedNotification:
    try:
        return await service.mark_failed(notification_id, data.error_message)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.put(
    "/{notification_id}/skip",
    response_model=PlannedNotification,
    summary="Skip planned notification",
)
async def skip_notification(
    notification_id: UUID,
    data: SkipRequest,
    service: Service,
) -> PlannedNotification:
    try:
        return await service.skip(notification_id, data.reason)
    except NotificationServiceError as e:
        raise _http_error(e) from e


@router.post(
    "/{notification_id}/retry",
    response_model=PlannedNotification,
    status_code=status.HTTP_201_CREATED,
    summary="Retry failed notification",
    description="Create a new SCHEDULED notification from a FAILED one.",
)
async def retry_notification(
    notification_id: UUID,
    service: Service,
    data: RetryRequest | None = None,
) -> PlannedNotification:
    try:
        return await service.retry(notification_id, data.scheduled_at if data else None)
    except NotificationServiceError as e:
        raise _http_error(e) from e
