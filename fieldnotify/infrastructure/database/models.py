# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for planned notifications.

The partial unique index uq_planned_notifications_active_automatic backs
the one-active-per-(device, type) rule for automatic notifications.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, Boolean, Date, DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for fieldnotify tables."""


class PlannedNotificationRecord(Base):
    """Row of the planned_notifications table."""

    __tablename__ = "planned_notifications"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    device_ref: Mapped[Optional[UUID]] = mapped_column(nullable=True)
    client_ref: Mapped[Optional[UUID]] = mapped_column(nullable=True)
    client_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    device_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[str] = mapped_column(String(32), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    notification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    planned_source: Mapped[str] = mapped_column(String(32), nullable=False)
    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    inspection_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    superseded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        Index("ix_planned_notifications_status_scheduled", "status", "scheduled_at"),
        Index("ix_planned_notifications_client", "client_ref"),
        Index("ix_planned_notifications_device", "device_ref"),
        Index(
            "uq_planned_notifications_active_automatic",
            "device_ref",
            "notification_type",
            unique=True,
            postgresql_where=text("status = 'SCHEDULED' AND is_automatic"),
        ),
    )
