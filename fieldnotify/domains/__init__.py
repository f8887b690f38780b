# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for fieldnotify.

Domains:
    planned_notification: Planning, lifecycle and queries of reminder and
        notification messages.
"""
