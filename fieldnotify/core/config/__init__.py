# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for fieldnotify.

Example:
    >>> from fieldnotify.core.config import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from fieldnotify.core.config.settings import (
    APISettings,
    DatabaseSettings,
    PlanningSettings,
    Settings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "clear_settings_cache",
    "PlanningSettings",
    "DatabaseSettings",
    "APISettings",
]
