# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Planning runs that turn policy candidates into stored notifications.

refresh_planning is additive and idempotent: it inserts what the policy
asks for and counts store conflicts as "already planned". force_replan
first cancels every SCHEDULED automatic notification (marking it
superseded) and then refreshes. Re-running force_replan after a failure
in either phase converges to the same state.

Manual notifications are never read for cancellation and never blocked by
the dedup rule, so planning runs leave them untouched.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Protocol

from fieldnotify.domains.planned_notification.exceptions import (
    ConflictError,
    DependencyError,
    InvalidTransitionError,
    NotFoundError,
    NotificationServiceError,
)
from fieldnotify.domains.planned_notification.lifecycle import LifecycleManager
from fieldnotify.domains.planned_notification.models import (
    CandidateError,
    ClientSnapshot,
    DeviceSnapshot,
    NotificationFilter,
    NotificationStatus,
    NotificationType,
    RefreshResult,
)
from fieldnotify.domains.planned_notification.policy import (
    AUTOMATIC_TYPES,
    DecisionOutcome,
    PlanningResult,
    SchedulingPolicyEngine,
)
from fieldnotify.domains.planned_notification.store import NotificationStore
from fieldnotify.utils.datetime import utc_now
from fieldnotify.utils.logging import get_logger

logger = get_logger(__name__)

FORCE_REPLAN_REASON = "Superseded by force replan"


class SnapshotProvider(Protocol):
    """Source of device and client state owned by other subsystems."""

    async def load_devices(self) -> list[DeviceSnapshot]:
        ...

    async def load_clients(self) -> list[ClientSnapshot]:
        ...


class StaticSnapshotProvider:
    """SnapshotProvider backed by fixed lists.

    Used for tests, demos and single-process deployments that push the
    registry state in through replace().
    """

    def __init__(
        self,
        devices: Iterable[DeviceSnapshot] = (),
        clients: Iterable[ClientSnapshot] = (),
    ) -> None:
        self.devices = list(devices)
        self.clients = list(clients)

    def replace(
        self,
        devices: Iterable[DeviceSnapshot] | None = None,
        clients: Iterable[ClientSnapshot] | None = None,
    ) -> None:
        """Swap in new device and/or client lists."""
        if devices is not None:
            self.devices = list(devices)
        if clients is not None:
            self.clients = list(clients)

    async def load_devices(self) -> list[DeviceSnapshot]:
        return [device.model_copy() for device in self.devices]

    async def load_clients(self) -> list[ClientSnapshot]:
        return [client.model_copy() for client in self.clients]


class RefreshCoordinator:
    """Runs planning passes against the store.

    Attributes:
        store: Notification store.
        lifecycle: Lifecycle manager used for every write.
        engine: Scheduling policy engine.
        snapshots: Device and client snapshot provider.
        clock: Source of the current time.
    """

    def __init__(
        self,
        store: NotificationStore,
        lifecycle: LifecycleManager,
        engine: SchedulingPolicyEngine,
        snapshots: SnapshotProvider,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.lifecycle = lifecycle
        self.engine = engine
        self.snapshots = snapshots
        self.clock = clock

    async def refresh_planning(self, days_ahead: int | None = None) -> RefreshResult:
        """Insert every automatic notification the policy asks for.

        Args:
            days_ahead: Reminder lead time (defaults to the configured one).

        Returns:
            Added, skipped and failed candidates.

        Raises:
            DependencyError: If the snapshots cannot be loaded.
            ValidationError: If days_ahead is negative.
        """
        return await self._run(AUTOMATIC_TYPES, days_ahead)

    async def plan_inspection_reminders(self, days_ahead: int | None = None) -> RefreshResult:
        """Refresh inspection reminders only."""
        return await self._run({NotificationType.INSPECTION_REMINDER}, days_ahead)

    async def plan_expiration_notifications(self) -> RefreshResult:
        """Refresh expiration-day notices only."""
        return await self._run({NotificationType.EXPIRATION_NOTIFICATION}, None)

    async def force_replan(self, days_ahead: int | None = None) -> RefreshResult:
        """Cancel all SCHEDULED automatic notifications, then refresh.

        Cancelled notifications are marked superseded and keep an audit
        record with the replan reason.

        Args:
            days_ahead: Reminder lead time (defaults to the configured one).

        Returns:
            Refresh result with cancelled_count set.
        """
        scheduled = await self.store.list(
            NotificationFilter(
                statuses=frozenset({NotificationStatus.SCHEDULED}),
                automatic=True,
            )
        )

        cancelled = 0
        for notification in scheduled:
            try:
                await self.lifecycle.cancel(
                    notification.id, FORCE_REPLAN_REASON, superseded=True
                )
                cancelled += 1
            except (InvalidTransitionError, NotFoundError) as e:
                # Changed or removed since it was listed
                logger.debug(
                    "force_replan_skipped", notification_id=notification.id, reason=str(e)
                )

        logger.info("force_replan_cancelled", cancelled=cancelled)

        result = await self.refresh_planning(days_ahead)
        return result.merge(RefreshResult(cancelled_count=cancelled))

    async def preview(self, days_ahead: int | None = None) -> PlanningResult:
        """Run the policy without writing anything.

        Returns:
            Candidates and per-device decisions of a refresh run now.
        """
        devices, clients = await self._load_snapshots()
        existing = await self.store.list(NotificationFilter(automatic=True))
        return self.engine.compute_candidates(
            devices, clients, existing, self.clock(), days_ahead
        )

    async def _run(
        self,
        types: Iterable[NotificationType],
        days_ahead: int | None,
    ) -> RefreshResult:
        """Plan the given types and persist the candidates."""
        devices, clients = await self._load_snapshots()
        existing = await self.store.list(NotificationFilter(automatic=True))
        plan = self.engine.compute_candidates(
            devices, clients, existing, self.clock(), days_ahead, types
        )

        result = await self._persist(plan)
        logger.info(
            "planning_run_finished",
            types=sorted(t.value for t in types),
            added=result.added_count,
            skipped=result.skipped_count,
            errors=len(result.errors),
        )
        return result

    async def _persist(self, plan: PlanningResult) -> RefreshResult:
        """Insert candidates one by one, collecting per-candidate failures."""
        added_ids = []
        skipped = plan.count(DecisionOutcome.ALREADY_PLANNED)
        errors = list(plan.errors)

        for candidate in plan.candidates:
            reason = "Automatic retry" if candidate.retry_count else "Planned automatically"
            try:
                created = await self.lifecycle.create(candidate, reason=reason)
                added_ids.append(created.id)
            except ConflictError:
                skipped += 1
                logger.debug(
                    "candidate_already_planned",
                    notification_type=candidate.notification_type,
                    device_id=candidate.device_ref,
                )
            except Exception as e:
                # Store failures stay with their candidate; the batch goes on
                errors.append(
                    CandidateError(
                        device_id=candidate.device_ref,
                        client_id=candidate.client_ref,
                        notification_type=candidate.notification_type,
                        error_type=type(e).__name__,
                        message=str(e),
                    )
                )
                logger.warning(
                    "candidate_failed",
                    notification_type=candidate.notification_type,
                    device_id=candidate.device_ref,
                    error=str(e),
                )

        return RefreshResult(
            added_count=len(added_ids),
            skipped_count=skipped,
            added_ids=added_ids,
            errors=errors,
        )

    async def _load_snapshots(self) -> tuple[list[DeviceSnapshot], list[ClientSnapshot]]:
        """Load devices and clients, wrapping provider failures.

        Raises:
            DependencyError: If the provider fails.
        """
        try:
            devices = await self.snapshots.load_devices()
            clients = await self.snapshots.load_clients()
        except NotificationServiceError:
            raise
        except Exception as e:
            logger.error("planning_snapshots_failed", error=str(e))
            raise DependencyError(f"Failed to load planning snapshots: {e}") from e
        return devices, clients
