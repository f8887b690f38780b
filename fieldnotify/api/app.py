# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the fieldnotify API.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from fieldnotify import __version__
from fieldnotify.api.dependencies import build_service
from fieldnotify.api.routes import health
from fieldnotify.api.v1 import router as v1_router
from fieldnotify.core.config import get_settings
from fieldnotify.domains.planned_notification import SnapshotProvider
from fieldnotify.infrastructure.background import PlanningScheduler, register_planning_jobs
from fieldnotify.infrastructure.database import close_database, create_schema, init_database
from fieldnotify.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def create_app(snapshots: SnapshotProvider | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        snapshots: Device/client snapshot provider handed to the service.
            Deployments plug in their registry adapter here.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager.

        Startup: logging, database (when selected), service, scheduler.
        Shutdown: scheduler, database.
        """
        setup_logging(settings)
        logger.info(
            "Starting fieldnotify API",
            environment=settings.environment,
            storage_backend=settings.storage_backend,
        )

        if settings.storage_backend == "database":
            await init_database(settings)
            await create_schema()

        app.state.notification_service = build_service(settings, snapshots)

        scheduler = PlanningScheduler(timezone=settings.planning.timezone)
        app.state.scheduler = scheduler
        if settings.planning.scheduler_enabled:
            register_planning_jobs(scheduler, app.state.notification_service, settings.planning)
            await scheduler.start()

        yield

        await scheduler.stop()
        if settings.storage_backend == "database":
            await close_database()
        logger.info("Shutting down fieldnotify API")

    app = FastAPI(
        title=settings.api.title,
        description="Planned notification scheduling and lifecycle engine",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
