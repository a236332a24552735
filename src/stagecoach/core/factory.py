"""
Factory functions that create component instances from settings.

Each factory imports its backend lazily so that selecting the in-memory
components never touches Celery or Redis connection setup.

Tags:
    stagecoach, configuration, factory-pattern, lazy-imports, celery, redis

Doc-Types:
    api-reference
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .settings import BusBackendKind, QueueBackendKind, StagecoachSettings

if TYPE_CHECKING:
    from stagecoach.bus import MessageBus
    from stagecoach.execution.backends.protocol import QueueBackend


def create_queue_backend(settings: StagecoachSettings) -> QueueBackend:
    """Create the job queue backend selected by *settings.queue_backend*."""
    match settings.queue_backend:
        case QueueBackendKind.MEMORY:
            from stagecoach.execution.backends.memory import MemoryBackend

            return MemoryBackend()
        case QueueBackendKind.LOCAL:
            from stagecoach.execution.backends.local import LocalBackend

            return LocalBackend(max_workers=settings.local_workers)
        case QueueBackendKind.CELERY:
            from stagecoach.execution.backends.celery import CeleryBackend
            from stagecoach.execution.tasks import make_celery

            return CeleryBackend(
                make_celery(settings),
                max_retries=settings.job_max_retries,
                retry_backoff_seconds=settings.job_retry_backoff_seconds,
            )


def create_message_bus(settings: StagecoachSettings) -> MessageBus:
    """Create the (not yet started) message bus selected by *settings.bus_backend*."""
    match settings.bus_backend:
        case BusBackendKind.MEMORY:
            from stagecoach.bus.memory import InMemoryMessageBus

            return InMemoryMessageBus()
        case BusBackendKind.REDIS:
            from stagecoach.bus.redis import RedisMessageBus

            return RedisMessageBus(
                settings.bus_redis_url,
                channel_prefix=settings.bus_channel_prefix,
            )


__all__ = ["create_queue_backend", "create_message_bus"]
