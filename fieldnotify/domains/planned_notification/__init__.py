# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Planned notification domain package.

This package provides the planned notification engine including:
- Notification store contract and in-memory store
- Lifecycle state machine with audit trail
- Queries, search, time windows and statistics
- Automatic planning policy, refresh and force replan
"""

from fieldnotify.domains.planned_notification.exceptions import (
    ConflictError,
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    NotificationServiceError,
    ValidationError,
)
from fieldnotify.domains.planned_notification.lifecycle import TRANSITIONS, LifecycleManager
from fieldnotify.domains.planned_notification.models import (
    ClientSnapshot,
    DeviceSnapshot,
    ManualNotificationCreate,
    NotificationFilter,
    NotificationPage,
    NotificationPatch,
    NotificationStatus,
    NotificationType,
    PlannedNotification,
    PlannedSource,
    PolicyConfig,
    RefreshResult,
    StatisticsSummary,
)
from fieldnotify.domains.planned_notification.policy import (
    DecisionOutcome,
    PlanningDecision,
    PlanningResult,
    SchedulingPolicyEngine,
)
from fieldnotify.domains.planned_notification.query import QueryService, SortKey
from fieldnotify.domains.planned_notification.refresh import (
    RefreshCoordinator,
    SnapshotProvider,
    StaticSnapshotProvider,
)
from fieldnotify.domains.planned_notification.service import PlannedNotificationService
from fieldnotify.domains.planned_notification.statistics import StatisticsAggregator
from fieldnotify.domains.planned_notification.store import (
    InMemoryNotificationStore,
    NotificationStore,
)

__all__ = [
    # Service
    "PlannedNotificationService",
    # Components
    "NotificationStore",
    "InMemoryNotificationStore",
    "LifecycleManager",
    "TRANSITIONS",
    "QueryService",
    "SortKey",
    "StatisticsAggregator",
    "SchedulingPolicyEngine",
    "DecisionOutcome",
    "PlanningDecision",
    "PlanningResult",
    "RefreshCoordinator",
    "SnapshotProvider",
    "StaticSnapshotProvider",
    # Models
    "PlannedNotification",
    "NotificationStatus",
    "NotificationType",
    "PlannedSource",
    "ManualNotificationCreate",
    "NotificationPatch",
    "NotificationFilter",
    "NotificationPage",
    "DeviceSnapshot",
    "ClientSnapshot",
    "PolicyConfig",
    "RefreshResult",
    "StatisticsSummary",
    # Exceptions
    "NotificationServiceError",
    "ValidationError",
    "NotFoundError",
    "InvalidTransitionError",
    "ConflictError",
    "DependencyError",
]
