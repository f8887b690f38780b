# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background scheduling of planning jobs."""

from fieldnotify.infrastructure.background.scheduler import (
    PlanningScheduler,
    ScheduledJob,
    parse_cron,
    register_planning_jobs,
)

__all__ = [
    "PlanningScheduler",
    "ScheduledJob",
    "parse_cron",
    "register_planning_jobs",
]
