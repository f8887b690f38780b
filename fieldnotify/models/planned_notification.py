# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Request and response models for the planned notification API.

Domain models (PlannedNotification, NotificationPage, ...) are returned
as-is; this module only adds the bodies of command endpoints.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from fieldnotify.domains.planned_notification.service import DEFAULT_CANCEL_REASON


class CancelRequest(BaseModel):
    """Body of PUT /{id}/cancel."""

    reason: str = Field(default=DEFAULT_CANCEL_REASON, max_length=500)


class SkipRequest(BaseModel):
    """Body of PUT /{id}/skip."""

    reason: str = Field(..., max_length=500)


class MarkFailedRequest(BaseModel):
    """Body of PUT /{id}/mark-failed."""

    error_message: str = Field(..., max_length=2000)


class RetryRequest(BaseModel):
    """Body of POST /{id}/retry."""

    scheduled_at: datetime | None = None


class CleanupResponse(BaseModel):
    """Result of POST /cleanup."""

    deleted_count: int
    days_to_keep: int
