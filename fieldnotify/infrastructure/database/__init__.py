# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for PostgreSQL connections.

Example:
    from fieldnotify.infrastructure.database import (
        SqlAlchemyNotificationStore,
        init_database,
    )

    await init_database(settings)
    store = SqlAlchemyNotificationStore()
"""

from fieldnotify.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    create_schema,
    get_engine,
    get_session,
    get_sessionmaker,
    init_database,
)
from fieldnotify.infrastructure.database.models import Base, PlannedNotificationRecord
from fieldnotify.infrastructure.database.notification_store import SqlAlchemyNotificationStore

__all__ = [
    # Connection
    "DatabaseError",
    "check_database_connection",
    "close_database",
    "create_schema",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "init_database",
    # Models
    "Base",
    "PlannedNotificationRecord",
    # Store
    "SqlAlchemyNotificationStore",
]
