# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for fieldnotify.

Design Decisions:
-----------------
1. All timestamps are stored in UTC
2. All Python datetimes are timezone-aware (with timezone.utc)
3. Calendar-day boundaries ("today", "this week") are computed in a
   configurable local timezone and converted back to UTC

Usage:
------
    from fieldnotify.utils.datetime import utc_now, start_of_day

    now = utc_now()
    midnight = start_of_day(now, "Europe/Warsaw")
"""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def local_date(moment: datetime, tz_name: str = "UTC") -> date:
    """Get the calendar date of a moment in the given timezone.

    Args:
        moment: Any datetime (naive values are treated as UTC).
        tz_name: IANA timezone name.

    Returns:
        The local calendar date.
    """
    return ensure_utc(moment).astimezone(ZoneInfo(tz_name)).date()


def at_local_time(day: date, hour: int, tz_name: str = "UTC") -> datetime:
    """Build the UTC instant of a local wall-clock hour on a given day.

    Args:
        day: Local calendar date.
        hour: Local hour of day (0-23).
        tz_name: IANA timezone name.

    Returns:
        Timezone-aware UTC datetime.
    """
    local = datetime.combine(day, time(hour=hour), tzinfo=ZoneInfo(tz_name))
    return local.astimezone(timezone.utc)


def start_of_day(moment: datetime, tz_name: str = "UTC") -> datetime:
    """Get the UTC instant of local midnight for the day containing moment.

    Args:
        moment: Any datetime (naive values are treated as UTC).
        tz_name: IANA timezone name.

    Returns:
        Timezone-aware UTC datetime.
    """
    return at_local_time(local_date(moment, tz_name), 0, tz_name)


def day_range(day: date, tz_name: str = "UTC") -> tuple[datetime, datetime]:
    """Get the half-open UTC interval [start, end) covering a local day.

    Args:
        day: Local calendar date.
        tz_name: IANA timezone name.

    Returns:
        Tuple of (start, end) UTC datetimes.
    """
    return at_local_time(day, 0, tz_name), at_local_time(day + timedelta(days=1), 0, tz_name)


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat()
