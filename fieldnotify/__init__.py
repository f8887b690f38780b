"""fieldnotify.

Planned-notification scheduling and lifecycle engine for field-service
management: inspection reminders, expiration-day notices and manual
messages, tracked from planning through delivery.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
