# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for fieldnotify.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
"""

from fieldnotify.utils.datetime import (
    at_local_time,
    day_range,
    ensure_utc,
    format_iso,
    local_date,
    start_of_day,
    utc_now,
)
from fieldnotify.utils.logging import get_logger, planning_run, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "planning_run",
    # Datetime
    "utc_now",
    "ensure_utc",
    "local_date",
    "at_local_time",
    "start_of_day",
    "day_range",
    "format_iso",
]
