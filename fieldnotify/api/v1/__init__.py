# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

Modules:
    planned_notifications: Planned notification endpoints (CRUD,
        lifecycle, queries, planning runs).
"""

from fastapi import APIRouter

from fieldnotify.api.v1 import planned_notifications

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(
    planned_notifications.router,
    prefix="/planned-notifications",
    tags=["Planned Notifications"],
)

__all__ = ["router"]
