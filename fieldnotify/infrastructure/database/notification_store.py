# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy implementation of the notification store.

Each operation runs in its own session from the session factory (by
default get_session, which commits on success). The dedup rule is checked
with a query before every write and backed by a partial unique index, so a
concurrent insert that slips past the query still fails with ConflictError.
Updates lock the row with SELECT ... FOR UPDATE before the status check.

Example:
    await init_database(settings)
    store = SqlAlchemyNotificationStore()
    service = PlannedNotificationService(store, snapshots)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldnotify.domains.planned_notification.exceptions import ConflictError, NotFoundError
from fieldnotify.domains.planned_notification.models import (
    NotificationFilter,
    NotificationStatus,
    PlannedNotification,
    StatusChange,
)
from fieldnotify.domains.planned_notification.store import apply_patch
from fieldnotify.infrastructure.database.connection import get_session
from fieldnotify.infrastructure.database.models import PlannedNotificationRecord

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]

_COLUMNS = (
    "device_ref",
    "client_ref",
    "client_name",
    "device_name",
    "phone_number",
    "message",
    "scheduled_at",
    "inspection_due_date",
    "created_at",
    "updated_at",
    "sent_at",
    "error_message",
    "retry_count",
    "max_retries",
    "superseded",
)


def to_model(record: PlannedNotificationRecord) -> PlannedNotification:
    """Convert a row into a domain model."""
    return PlannedNotification.model_validate(
        {
            "id": record.id,
            **{name: getattr(record, name) for name in _COLUMNS},
            "status": record.status,
            "notification_type": record.notification_type,
            "planned_source": record.planned_source,
            "history": record.history or [],
        }
    )


def apply_to_record(record: PlannedNotificationRecord, notification: PlannedNotification) -> None:
    """Copy every field of a domain model onto a row."""
    for name in _COLUMNS:
        setattr(record, name, getattr(notification, name))
    record.status = notification.status.value
    record.notification_type = notification.notification_type.value
    record.planned_source = notification.planned_source.value
    record.is_automatic = notification.is_automatic
    record.history = [change.model_dump(mode="json") for change in notification.history]


def to_record(notification: PlannedNotification) -> PlannedNotificationRecord:
    """Convert a domain model into a new row."""
    record = PlannedNotificationRecord(id=notification.id)
    apply_to_record(record, notification)
    return record


def filter_clauses(filter: NotificationFilter) -> list[Any]:
    """Translate a NotificationFilter into WHERE clauses."""
    table = PlannedNotificationRecord
    clauses: list[Any] = []

    if filter.statuses is not None:
        clauses.append(table.status.in_(sorted(status.value for status in filter.statuses)))
    if filter.client_ref is not None:
        clauses.append(table.client_ref == filter.client_ref)
    if filter.device_ref is not None:
        clauses.append(table.device_ref == filter.device_ref)
    if filter.notification_type is not None:
        clauses.append(table.notification_type == filter.notification_type.value)
    if filter.planned_source is not None:
        clauses.append(table.planned_source == filter.planned_source.value)
    if filter.automatic is not None:
        clauses.append(table.is_automatic.is_(filter.automatic))
    if filter.scheduled_from is not None:
        clauses.append(table.scheduled_at >= filter.scheduled_from)
    if filter.scheduled_to is not None:
        clauses.append(table.scheduled_at < filter.scheduled_to)

    return clauses


class SqlAlchemyNotificationStore:
    """NotificationStore backed by a SQL database.

    Attributes:
        session_factory: Returns an async context manager yielding a session.
    """

    def __init__(self, session_factory: SessionFactory = get_session) -> None:
        self.session_factory = session_factory

    async def get(self, notification_id: UUID) -> PlannedNotification | None:
        async with self.session_factory() as session:
            record = await session.get(PlannedNotificationRecord, notification_id)
            return to_model(record) if record is not None else None

    async def list(self, filter: NotificationFilter | None = None) -> list[PlannedNotification]:
        stmt = select(PlannedNotificationRecord).order_by(
            PlannedNotificationRecord.scheduled_at
        )
        if filter is not None:
            stmt = stmt.where(*filter_clauses(filter))

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [to_model(record) for record in result.scalars().all()]

    async def insert(self, notification: PlannedNotification) -> PlannedNotification:
        async with self.session_factory() as session:
            await self._check_conflict(session, notification)
            session.add(to_record(notification))
            await self._flush(session, notification)

        logger.debug("Stored planned notification %s", notification.id)
        return notification.model_copy(deep=True)

    async def update(
        self,
        notification_id: UUID,
        patch: dict[str, Any],
        change: StatusChange | None = None,
    ) -> PlannedNotification:
        async with self.session_factory() as session:
            record = await session.get(
                PlannedNotificationRecord, notification_id, with_for_update=True
            )
            if record is None:
                raise NotFoundError(notification_id)

            # Row stays locked until commit
            updated = apply_patch(to_model(record), patch, change)
            await self._check_conflict(session, updated)
            apply_to_record(record, updated)
            await self._flush(session, updated)

        return updated

    async def delete(self, notification_id: UUID) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(PlannedNotificationRecord).where(
                    PlannedNotificationRecord.id == notification_id
                )
            )
            return result.rowcount > 0

    @staticmethod
    async def _check_conflict(session: AsyncSession, notification: PlannedNotification) -> None:
        """Raise ConflictError if an active automatic row holds the slot."""
        if notification.dedup_key is None or not notification.is_active:
            return

        table = PlannedNotificationRecord
        result = await session.execute(
            select(table.id)
            .where(
                table.device_ref == notification.device_ref,
                table.notification_type == notification.notification_type.value,
                table.status == NotificationStatus.SCHEDULED.value,
                table.is_automatic.is_(True),
                table.id != notification.id,
            )
            .limit(1)
        )
        existing_id = result.scalar_one_or_none()
        if existing_id is not None:
            raise ConflictError(
                device_ref=notification.device_ref,
                notification_type=notification.notification_type,
                existing_id=existing_id,
            )

    @staticmethod
    async def _flush(session: AsyncSession, notification: PlannedNotification) -> None:
        """Flush pending changes, mapping unique index violations."""
        try:
            await session.flush()
        except IntegrityError as e:
            logger.debug("Integrity error for %s: %s", notification.id, e)
            raise ConflictError(
                device_ref=notification.device_ref,
                notification_type=notification.notification_type,
            ) from e
