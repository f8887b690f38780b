# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Structured logging configuration using structlog.

Planning code logs events with keyword fields through get_logger().
Records from the standard library (uvicorn, SQLAlchemy, APScheduler and
the modules that still use logging.getLogger) go through the same
processor chain, so one stream carries both. Output is colored console
text in development and JSON lines everywhere else.

Notification ids, statuses and timestamps are rendered as plain strings.
Every line emitted inside planning_run() carries the job name and a
run_id, so the lines of one refresh can be grouped.

Example:
    >>> from fieldnotify.utils.logging import get_logger, planning_run, setup_logging
    >>> setup_logging(get_settings())
    >>> logger = get_logger(__name__)
    >>> with planning_run("refresh_planning", days_ahead=14):
    ...     logger.info("planning_run_finished", added=3, skipped=12)
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

if TYPE_CHECKING:
    from fieldnotify.core.config.settings import Settings

HANDLER_NAME = "fieldnotify"

NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "sqlalchemy.engine",
    "apscheduler.scheduler",
    "apscheduler.executors.default",
    "asyncio",
)


def render_domain_values(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """Render ids, enum members and timestamps as plain strings."""
    for key, value in event_dict.items():
        if isinstance(value, Enum):
            event_dict[key] = value.value
        elif isinstance(value, UUID):
            event_dict[key] = str(value)
        elif isinstance(value, (datetime, date)):
            event_dict[key] = value.isoformat()
    return event_dict


def _shared_processors() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        render_domain_values,
    ]


def setup_logging(settings: "Settings") -> None:
    """Configure structlog and route standard library logging through it.

    Calling it again replaces the handler installed by the previous call.

    Args:
        settings: Application settings containing log_level and debug flag.
    """
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)
    shared = _shared_processors()

    if settings.is_development or settings.debug:
        renderers: list[Processor] = [structlog.dev.ConsoleRenderer(colors=True)]
    else:
        renderers = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *renderers,
            ],
        )
    )

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(log_level)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given module name.

    Args:
        name: Usually __name__ of the calling module.

    Returns:
        A bound structlog logger instance.
    """
    return structlog.get_logger(name)


@contextmanager
def planning_run(job: str, **fields: Any) -> Iterator[str]:
    """Tag every log line in the block with the job name and a fresh run_id.

    Values bound before entering are restored on exit, so runs can nest
    inside a request context.

    Args:
        job: Name of the planning job.
        **fields: Extra fields to bind, such as days_ahead.

    Yields:
        The run_id.
    """
    run_id = uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(job=job, run_id=run_id, **fields):
        yield run_id
