"""
Structured logging for stagecoach.

All modules log through structlog with dotted, snake_case event names
(``staging.begin``, ``job.failed``) and keyword fields.  Request ids bound by
:mod:`stagecoach.execution.request_context` travel through
``structlog.contextvars`` and are merged into every log line emitted while a
job runs, on whichever thread or asyncio task it runs.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None, service="stagecoach")
            │
            ▼
        processor chain:
          1. TimeStamper(iso)
          2. merge_contextvars      ← request_id, job, app_guid ...
          3. add_log_level / add_logger_name
          4. StackInfoRenderer / set_exc_info
          5. add_service_metadata
          6. JSONRenderer (non-tty) | ConsoleRenderer (tty)

Examples:
    >>> from stagecoach.core.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", service="cc-worker")
    >>> log = get_logger(__name__)
    >>> log.info("staging.begin", app_guid="abc")

Tags:
    logging, structlog, observability, stagecoach

Doc-Types:
    api-reference
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "stagecoach"


def _add_service_metadata(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "stagecoach",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper())),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Rendered lines go out through the stdlib handler, shared with Celery and redis
    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    # basicConfig leaves the level alone when a handler is already installed
    logging.getLogger().setLevel(getattr(logging, level.upper()))


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs of this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


__all__ = ["configure_logging", "get_logger", "bind_context", "unbind_context"]
