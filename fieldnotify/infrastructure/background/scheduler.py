# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic planning jobs.

Uses APScheduler for cron-style execution of the planning refresh and the
retention cleanup.

Example:
    from fieldnotify.infrastructure.background.scheduler import (
        PlanningScheduler,
        register_planning_jobs,
    )

    scheduler = PlanningScheduler(timezone="Europe/Warsaw")
    register_planning_jobs(scheduler, service, settings.planning)
    await scheduler.start()
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from fieldnotify.utils.datetime import format_iso, utc_now
from fieldnotify.utils.logging import planning_run

if TYPE_CHECKING:
    from fieldnotify.core.config.settings import PlanningSettings
    from fieldnotify.domains.planned_notification.service import PlannedNotificationService

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]


def parse_cron(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Build a trigger from a 5-part cron expression.

    Args:
        expression: Cron expression (minute hour day month weekday).
        timezone: IANA timezone the expression is evaluated in.

    Returns:
        APScheduler cron trigger.

    Raises:
        ValueError: If the expression is invalid.
    """
    parts = expression.split()
    if len(parts) != 5:
        raise ValueError(f"Invalid cron expression: {expression}")

    return CronTrigger(
        minute=parts[0],
        hour=parts[1],
        day=parts[2],
        month=parts[3],
        day_of_week=parts[4],
        timezone=timezone,
    )


@dataclass
class ScheduledJob:
    """A periodic job and its run statistics.

    Attributes:
        name: Human-readable job name.
        func: Coroutine function to run.
        cron_expression: When to run.
        id: Unique job identifier.
        enabled: Whether the job is registered with APScheduler.
        last_run: Last run timestamp.
        last_result: Return value of the last successful run.
        last_error: Error message of the last failed run.
        run_count: Total number of successful runs.
        error_count: Number of failed runs.
    """

    name: str
    func: JobFunc
    cron_expression: str
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    last_result: Any = None
    last_error: str | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "cron_expression": self.cron_expression,
            "enabled": self.enabled,
            "last_run": format_iso(self.last_run),
            "last_error": self.last_error,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class PlanningScheduler:
    """Runs planning jobs on cron schedules.

    Jobs may be added before or after start(); they are registered with
    APScheduler whenever the scheduler is running.

    Attributes:
        timezone: IANA timezone cron expressions are evaluated in.
        _scheduler: APScheduler instance while running.
        _jobs: Jobs keyed by id.
    """

    def __init__(self, timezone: str = "UTC") -> None:
        self.timezone = timezone
        self._scheduler: AsyncIOScheduler | None = None
        self._jobs: dict[str, ScheduledJob] = {}

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._scheduler is not None

    def add_cron_job(
        self,
        name: str,
        func: JobFunc,
        cron_expression: str,
        enabled: bool = True,
    ) -> ScheduledJob:
        """Add a cron-scheduled job.

        Args:
            name: Job name.
            func: Coroutine function to run.
            cron_expression: Cron expression (minute hour day month weekday).
            enabled: Whether the job runs on schedule.

        Returns:
            Created ScheduledJob.

        Raises:
            ValueError: If the cron expression is invalid.
        """
        parse_cron(cron_expression, self.timezone)

        job = ScheduledJob(name=name, func=func, cron_expression=cron_expression, enabled=enabled)
        self._jobs[job.id] = job

        if self._scheduler is not None and enabled:
            self._register(job)

        logger.info("Added cron job: %s (%s)", name, cron_expression)
        return job

    def remove_job(self, job_id: str) -> bool:
        """Remove a job. Returns False if it is unknown."""
        job = self._jobs.pop(job_id, None)
        if job is None:
            return False

        if self._scheduler is not None and self._scheduler.get_job(job_id) is not None:
            self._scheduler.remove_job(job_id)

        logger.info("Removed cron job: %s", job.name)
        return True

    def get_job(self, job_id: str) -> ScheduledJob | None:
        """Get a job by id."""
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[ScheduledJob]:
        """List all jobs."""
        return list(self._jobs.values())

    async def run_job_now(self, job_id: str) -> Any:
        """Run a job immediately, outside its schedule.

        Returns:
            The job's return value, or None if it failed.

        Raises:
            KeyError: If the job is unknown.
        """
        if job_id not in self._jobs:
            raise KeyError(job_id)
        await self._execute_job(job_id)
        return self._jobs[job_id].last_result

    async def start(self) -> None:
        """Start the scheduler and register enabled jobs."""
        if self._scheduler is not None:
            return

        self._scheduler = AsyncIOScheduler(timezone=self.timezone)
        for job in self._jobs.values():
            if job.enabled:
                self._register(job)
        self._scheduler.start()

        logger.info("Planning scheduler started with %d jobs", len(self._jobs))

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self._scheduler is None:
            return

        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Planning scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "is_running": self.is_running,
            "job_count": len(self._jobs),
            "enabled_count": sum(1 for j in self._jobs.values() if j.enabled),
            "total_runs": sum(j.run_count for j in self._jobs.values()),
            "total_errors": sum(j.error_count for j in self._jobs.values()),
            "jobs": [j.to_dict() for j in self._jobs.values()],
        }

    def _register(self, job: ScheduledJob) -> None:
        self._scheduler.add_job(
            self._execute_job,
            trigger=parse_cron(job.cron_expression, self.timezone),
            args=[job.id],
            id=job.id,
            name=job.name,
            replace_existing=True,
        )

    async def _execute_job(self, job_id: str) -> None:
        """Run a job and record the outcome.

        Failures are logged and counted; the scheduler keeps running.
        """
        job = self._jobs.get(job_id)
        if job is None:
            return

        logger.debug("Executing scheduled job: %s", job.name)
        job.last_run = utc_now()

        with planning_run(job.name, job_id=job.id):
            try:
                job.last_result = await job.func()
                job.last_error = None
                job.run_count += 1
            except Exception as e:
                job.last_result = None
                job.last_error = str(e)
                job.error_count += 1
                logger.error("Scheduled job %s failed: %s", job.name, e)


def register_planning_jobs(
    scheduler: PlanningScheduler,
    service: "PlannedNotificationService",
    settings: "PlanningSettings",
) -> list[ScheduledJob]:
    """Register the periodic refresh and retention cleanup jobs.

    Args:
        scheduler: Scheduler to add the jobs to.
        service: Planned notification service the jobs call.
        settings: Planning settings with cron expressions.

    Returns:
        The registered jobs.
    """

    async def refresh() -> dict[str, Any]:
        result = await service.refresh_planning()
        return result.model_dump(mode="json")

    async def cleanup() -> int:
        return await service.cleanup()

    return [
        scheduler.add_cron_job("Refresh Planning", refresh, settings.refresh_cron),
        scheduler.add_cron_job("Retention Cleanup", cleanup, settings.cleanup_cron),
    ]
