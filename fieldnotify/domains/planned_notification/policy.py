# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduling policy for automatic notifications.

The SchedulingPolicyEngine is a pure function of its inputs: device and
client snapshots, the notifications already stored and the current time.
It returns candidate notifications plus one PlanningDecision per device and
type explaining the outcome. Nothing is persisted here.

Rules:
- Inspection reminder: due when inspection_due_date - days_ahead <= today.
- Expiration notice: due when inspection_due_date == today.
- An inspection cycle (device, type, inspection_due_date) is planned once.
  A SCHEDULED, SENT or SKIPPED entry, or one cancelled by a user, closes
  the cycle. Entries cancelled by a force replan do not.
- A FAILED cycle with retry budget left is planned again with the retry
  counter carried over. An exhausted cycle is left alone.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from fieldnotify.domains.planned_notification.exceptions import (
    DependencyError,
    ValidationError,
)
from fieldnotify.domains.planned_notification.models import (
    CandidateError,
    ClientSnapshot,
    DeviceSnapshot,
    NotificationStatus,
    NotificationType,
    PlannedNotification,
    PlannedSource,
    PolicyConfig,
)
from fieldnotify.utils.datetime import at_local_time, ensure_utc, local_date

logger = logging.getLogger(__name__)


AUTOMATIC_TYPES = frozenset(
    {NotificationType.INSPECTION_REMINDER, NotificationType.EXPIRATION_NOTIFICATION}
)

SOURCE_BY_TYPE = {
    NotificationType.INSPECTION_REMINDER: PlannedSource.AUTOMATIC_INSPECTION,
    NotificationType.EXPIRATION_NOTIFICATION: PlannedSource.AUTOMATIC_EXPIRATION,
}


class DecisionOutcome(str, Enum):
    """Why the engine did or did not produce a candidate."""

    CANDIDATE = "CANDIDATE"
    RETRY = "RETRY"
    DISABLED = "DISABLED"
    INACTIVE = "INACTIVE"
    NO_DUE_DATE = "NO_DUE_DATE"
    NOT_YET_DUE = "NOT_YET_DUE"
    ALREADY_PLANNED = "ALREADY_PLANNED"
    CYCLE_CLOSED = "CYCLE_CLOSED"
    RETRIES_EXHAUSTED = "RETRIES_EXHAUSTED"
    ERROR = "ERROR"


class PlanningDecision(BaseModel):
    """Outcome of planning one notification type for one device."""

    device_id: UUID
    notification_type: NotificationType
    outcome: DecisionOutcome
    detail: str | None = None
    notification_id: UUID | None = None


class PlanningResult(BaseModel):
    """Everything a planning pass produced."""

    candidates: list[PlannedNotification] = Field(default_factory=list)
    decisions: list[PlanningDecision] = Field(default_factory=list)
    errors: list[CandidateError] = Field(default_factory=list)

    def count(self, outcome: DecisionOutcome) -> int:
        """Number of decisions with the given outcome."""
        return sum(1 for decision in self.decisions if decision.outcome == outcome)


MessageComposer = Callable[[NotificationType, DeviceSnapshot, ClientSnapshot, date], str]


def default_message(
    notification_type: NotificationType,
    device: DeviceSnapshot,
    client: ClientSnapshot,
    due_date: date,
) -> str:
    """Plain message body used when no composer is configured."""
    device_name = device.display_name or "your device"
    if notification_type == NotificationType.EXPIRATION_NOTIFICATION:
        return (
            f"Hello {client.name}, the inspection of {device_name} is due today "
            f"({due_date.isoformat()}). Please contact us to book a visit."
        )
    return (
        f"Hello {client.name}, the inspection of {device_name} is due on "
        f"{due_date.isoformat()}. Please contact us to book a visit."
    )


class SchedulingPolicyEngine:
    """Computes which automatic notifications should exist.

    Attributes:
        config: Planning policy.
        composer: Builds the message body of a candidate.
    """

    def __init__(
        self,
        config: PolicyConfig | None = None,
        composer: MessageComposer = default_message,
    ) -> None:
        self.config = config or PolicyConfig()
        self.composer = composer

    def compute_candidates(
        self,
        devices: Iterable[DeviceSnapshot],
        clients: Iterable[ClientSnapshot],
        existing: Iterable[PlannedNotification],
        now: datetime,
        days_ahead: int | None = None,
        types: Iterable[NotificationType] = AUTOMATIC_TYPES,
    ) -> PlanningResult:
        """Plan automatic notifications for a set of devices.

        Args:
            devices: Device snapshots.
            clients: Client snapshots.
            existing: Notifications already stored.
            now: Reference time.
            days_ahead: Reminder lead time (defaults to the configured one).
            types: Automatic notification types to plan.

        Returns:
            Candidates, per-device decisions and per-device errors.

        Raises:
            ValidationError: If days_ahead is negative or a type is not automatic.
        """
        days_ahead = self.config.reminder_days_ahead if days_ahead is None else days_ahead
        if days_ahead < 0:
            raise ValidationError("days_ahead must be >= 0")

        requested = set(types)
        unknown = requested - AUTOMATIC_TYPES
        if unknown:
            raise ValidationError(
                "Only automatic types can be planned: "
                + ", ".join(sorted(t.value for t in unknown))
            )
        wanted = [t for t in NotificationType if t in requested]

        now = ensure_utc(now)
        today = local_date(now, self.config.timezone)
        clients_by_id = {client.id: client for client in clients}
        history = _index_existing(existing)

        result = PlanningResult()
        for device in devices:
            for notification_type in wanted:
                self._plan_one(
                    device,
                    notification_type,
                    clients_by_id,
                    history,
                    now,
                    today,
                    days_ahead,
                    result,
                )

        logger.debug(
            "Planning pass: %d candidates, %d errors, %d decisions",
            len(result.candidates),
            len(result.errors),
            len(result.decisions),
        )
        return result

    def plan_inspection_reminders(
        self,
        devices: Iterable[DeviceSnapshot],
        clients: Iterable[ClientSnapshot],
        existing: Iterable[PlannedNotification],
        now: datetime,
        days_ahead: int | None = None,
    ) -> PlanningResult:
        """Plan inspection reminders only."""
        return self.compute_candidates(
            devices,
            clients,
            existing,
            now,
            days_ahead,
            types=[NotificationType.INSPECTION_REMINDER],
        )

    def plan_expiration_notifications(
        self,
        devices: Iterable[DeviceSnapshot],
        clients: Iterable[ClientSnapshot],
        existing: Iterable[PlannedNotification],
        now: datetime,
    ) -> PlanningResult:
        """Plan expiration-day notices only."""
        return self.compute_candidates(
            devices,
            clients,
            existing,
            now,
            types=[NotificationType.EXPIRATION_NOTIFICATION],
        )

    def _plan_one(
        self,
        device: DeviceSnapshot,
        notification_type: NotificationType,
        clients_by_id: dict[UUID, ClientSnapshot],
        history: dict[tuple[UUID, NotificationType], list[PlannedNotification]],
        now: datetime,
        today: date,
        days_ahead: int,
        result: PlanningResult,
    ) -> None:
        """Decide for one (device, type) pair and record the outcome."""

        def decide(
            outcome: DecisionOutcome,
            detail: str | None = None,
            notification_id: UUID | None = None,
        ) -> None:
            result.decisions.append(
                PlanningDecision(
                    device_id=device.id,
                    notification_type=notification_type,
                    outcome=outcome,
                    detail=detail,
                    notification_id=notification_id,
                )
            )

        if not self._enabled(notification_type):
            decide(DecisionOutcome.DISABLED)
            return
        if not device.active:
            decide(DecisionOutcome.INACTIVE)
            return
        if device.inspection_due_date is None:
            decide(DecisionOutcome.NO_DUE_DATE)
            return

        due = device.inspection_due_date
        if notification_type == NotificationType.INSPECTION_REMINDER:
            planned_day = due - timedelta(days=days_ahead)
            if planned_day > today:
                decide(DecisionOutcome.NOT_YET_DUE, f"Reminder due on {planned_day.isoformat()}")
                return
        else:
            planned_day = due
            if due != today:
                decide(DecisionOutcome.NOT_YET_DUE, f"Inspection due on {due.isoformat()}")
                return

        previous = history.get((device.id, notification_type), [])
        active = next((item for item in previous if item.is_active), None)
        if active is not None:
            decide(DecisionOutcome.ALREADY_PLANNED, notification_id=active.id)
            return

        cycle = [item for item in previous if item.inspection_due_date == due]
        closing = next((item for item in cycle if _closes_cycle(item)), None)
        if closing is not None:
            decide(
                DecisionOutcome.CYCLE_CLOSED,
                f"Cycle already handled ({closing.status.value})",
                notification_id=closing.id,
            )
            return

        failed = [item for item in cycle if item.status == NotificationStatus.FAILED]
        last_failure = max(failed, key=lambda item: item.retry_count, default=None)
        if last_failure is not None and last_failure.retries_exhausted:
            decide(DecisionOutcome.RETRIES_EXHAUSTED, notification_id=last_failure.id)
            return

        try:
            client = self._resolve_client(device, clients_by_id)
        except DependencyError as exc:
            result.errors.append(
                CandidateError(
                    device_id=device.id,
                    client_id=device.client_id,
                    notification_type=notification_type,
                    error_type=type(exc).__name__,
                    message=str(exc),
                )
            )
            decide(DecisionOutcome.ERROR, str(exc))
            logger.warning(
                "Cannot plan %s for device %s: %s", notification_type.value, device.id, exc
            )
            return

        candidate = PlannedNotification(
            device_ref=device.id,
            client_ref=client.id,
            client_name=client.name,
            device_name=device.display_name or None,
            phone_number=client.phone_number.strip(),
            message=self.composer(notification_type, device, client, due),
            scheduled_at=max(
                at_local_time(planned_day, self.config.send_hour, self.config.timezone), now
            ),
            notification_type=notification_type,
            planned_source=SOURCE_BY_TYPE[notification_type],
            inspection_due_date=due,
            retry_count=last_failure.retry_count if last_failure else 0,
            max_retries=last_failure.max_retries if last_failure else self.config.max_retries,
        )
        result.candidates.append(candidate)

        if last_failure is not None:
            decide(
                DecisionOutcome.RETRY,
                f"Retry {last_failure.retry_count} of {last_failure.max_retries}",
                notification_id=candidate.id,
            )
        else:
            decide(DecisionOutcome.CANDIDATE, notification_id=candidate.id)

    def _enabled(self, notification_type: NotificationType) -> bool:
        if notification_type == NotificationType.INSPECTION_REMINDER:
            return self.config.reminders_enabled
        return self.config.expiration_day_enabled

    @staticmethod
    def _resolve_client(
        device: DeviceSnapshot,
        clients_by_id: dict[UUID, ClientSnapshot],
    ) -> ClientSnapshot:
        """Find the device owner with a usable phone number.

        Raises:
            DependencyError: If the client is unknown or has no phone number.
        """
        if device.client_id is None:
            raise DependencyError(f"Device {device.id} has no client")
        client = clients_by_id.get(device.client_id)
        if client is None:
            raise DependencyError(f"Client {device.client_id} of device {device.id} not found")
        if not client.phone_number or not client.phone_number.strip():
            raise DependencyError(f"Client {client.id} has no phone number")
        return client


def _closes_cycle(notification: PlannedNotification) -> bool:
    """Whether an entry means its inspection cycle needs no further planning."""
    if notification.status in (NotificationStatus.SENT, NotificationStatus.SKIPPED):
        return True
    return notification.status == NotificationStatus.CANCELLED and not notification.superseded


def _index_existing(
    existing: Iterable[PlannedNotification],
) -> dict[tuple[UUID, NotificationType], list[PlannedNotification]]:
    """Group automatic notifications by their (device, type) slot."""
    index: dict[tuple[UUID, NotificationType], list[PlannedNotification]] = {}
    for notification in existing:
        key = notification.dedup_key
        if key is not None:
            index.setdefault(key, []).append(notification)
    return index
