# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- A controllable clock fixed at a known instant
- Stores, snapshot providers and a wired service
- Factories for notifications, devices and clients
"""

import asyncio
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID, uuid4

import pytest

from fieldnotify.domains.planned_notification import (
    ClientSnapshot,
    DeviceSnapshot,
    InMemoryNotificationStore,
    NotificationFilter,
    NotificationType,
    PlannedNotification,
    PlannedNotificationService,
    PlannedSource,
    PolicyConfig,
    StaticSnapshotProvider,
)

# Monday 2025-03-10 08:00 UTC, one hour before the default send hour
FIXED_NOW = datetime(2025, 3, 10, 8, 0, tzinfo=timezone.utc)
TODAY = FIXED_NOW.date()


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an API integration test")


# =============================================================================
# Clock
# =============================================================================


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    """Provide a clock frozen at FIXED_NOW."""
    return FrozenClock(FIXED_NOW)


@pytest.fixture
def now() -> datetime:
    """Provide the fixed reference time."""
    return FIXED_NOW


# =============================================================================
# Factories
# =============================================================================


def _make_notification(**overrides: Any) -> PlannedNotification:
    data: dict[str, Any] = {
        "phone_number": "+48600100200",
        "message": "Your boiler inspection is coming up",
        "scheduled_at": FIXED_NOW + timedelta(days=1),
        "notification_type": NotificationType.MANUAL_CUSTOM,
        "planned_source": PlannedSource.MANUAL_CUSTOM,
        "client_name": "Jan Kowalski",
        "device_name": "Vaillant ecoTEC",
    }
    data.update(overrides)
    return PlannedNotification(**data)


def _make_automatic(device_ref: UUID | None = None, **overrides: Any) -> PlannedNotification:
    data: dict[str, Any] = {
        "device_ref": device_ref or uuid4(),
        "notification_type": NotificationType.INSPECTION_REMINDER,
        "planned_source": PlannedSource.AUTOMATIC_INSPECTION,
        "inspection_due_date": TODAY + timedelta(days=14),
    }
    data.update(overrides)
    return _make_notification(**data)


def _make_client(**overrides: Any) -> ClientSnapshot:
    data: dict[str, Any] = {"id": uuid4(), "name": "Jan Kowalski", "phone_number": "+48600100200"}
    data.update(overrides)
    return ClientSnapshot(**data)


def _make_device(client: ClientSnapshot | None = None, **overrides: Any) -> DeviceSnapshot:
    data: dict[str, Any] = {
        "id": uuid4(),
        "inspection_due_date": TODAY + timedelta(days=14),
        "active": True,
        "client_id": client.id if client else None,
        "display_name": "Vaillant ecoTEC",
    }
    data.update(overrides)
    return DeviceSnapshot(**data)


@pytest.fixture
def make_notification() -> Callable[..., PlannedNotification]:
    """Factory for manual notifications scheduled tomorrow."""
    return _make_notification


@pytest.fixture
def make_automatic() -> Callable[..., PlannedNotification]:
    """Factory for automatic inspection reminders."""
    return _make_automatic


@pytest.fixture
def make_client() -> Callable[..., ClientSnapshot]:
    """Factory for client snapshots."""
    return _make_client


@pytest.fixture
def make_device() -> Callable[..., DeviceSnapshot]:
    """Factory for device snapshots due in 14 days."""
    return _make_device


@pytest.fixture
def today() -> date:
    """Provide the calendar date of FIXED_NOW."""
    return TODAY


# =============================================================================
# Components
# =============================================================================


class YieldingNotificationStore(InMemoryNotificationStore):
    """In-memory store that suspends after every read.

    Other tasks run between a caller's read and its write, as they do
    against a database.
    """

    async def get(self, notification_id: UUID) -> PlannedNotification | None:
        item = await super().get(notification_id)
        await asyncio.sleep(0)
        return item

    async def list(self, filter: NotificationFilter | None = None) -> list[PlannedNotification]:
        items = await super().list(filter)
        await asyncio.sleep(0)
        return items


@pytest.fixture
def store() -> InMemoryNotificationStore:
    """Provide an empty in-memory store."""
    return InMemoryNotificationStore()


@pytest.fixture
def yielding_store() -> YieldingNotificationStore:
    """Provide an empty store that yields between reads and writes."""
    return YieldingNotificationStore()


@pytest.fixture
def client_snapshot() -> ClientSnapshot:
    """Provide a client with a phone number."""
    return _make_client()


@pytest.fixture
def device_snapshot(client_snapshot: ClientSnapshot) -> DeviceSnapshot:
    """Provide a device due in 14 days owned by client_snapshot."""
    return _make_device(client_snapshot)


@pytest.fixture
def snapshots(
    device_snapshot: DeviceSnapshot,
    client_snapshot: ClientSnapshot,
) -> StaticSnapshotProvider:
    """Provide a snapshot provider with one device and its client."""
    return StaticSnapshotProvider([device_snapshot], [client_snapshot])


@pytest.fixture
def service(
    store: InMemoryNotificationStore,
    snapshots: StaticSnapshotProvider,
    clock: FrozenClock,
) -> PlannedNotificationService:
    """Provide a service wired to the in-memory store and frozen clock."""
    return PlannedNotificationService(store, snapshots, config=PolicyConfig(), clock=clock)
