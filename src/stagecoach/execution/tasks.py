"""Celery application and the worker task for queued jobs.

A worker process running ``celery -A stagecoach.execution.tasks worker``
picks up jobs sent by :class:`~stagecoach.execution.backends.celery.CeleryBackend`.

Setup::

    # Start a worker for this node's local queue and the shared queue:
    celery -A stagecoach.execution.tasks worker --loglevel=info -Q cc-api-0,cc-generic

Configuration comes from :class:`~stagecoach.core.settings.StagecoachSettings`
(``STAGECOACH_CELERY_BROKER_URL``, ``STAGECOACH_CELERY_RESULT_BACKEND``).
Leaf job modules must be imported by the worker so their
``@register_job`` decorators run before the first payload arrives; the app
includes :mod:`stagecoach.staging.jobs`.
"""

from __future__ import annotations

from typing import Any

from celery import Celery, Task

from stagecoach.core.errors import JobDeserializationError
from stagecoach.core.logging import get_logger
from stagecoach.core.settings import StagecoachSettings, get_settings
from stagecoach.execution.backends.celery import PERFORM_JOB_TASK
from stagecoach.execution.worker import perform_job

log = get_logger(__name__)


def make_celery(settings: StagecoachSettings | None = None) -> Celery:
    """Create the Celery app from settings."""
    settings = settings or get_settings()
    celery = Celery(
        "stagecoach",
        broker=settings.celery_broker_url,
        backend=settings.celery_result_backend,
        include=["stagecoach.staging.jobs"],
    )
    celery.conf.update(
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,
        task_track_started=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_default_queue=settings.default_queue,
    )
    return celery


app = make_celery()


@app.task(name=PERFORM_JOB_TASK, bind=True)
def perform_job_task(
    self: Task,
    payload: dict[str, Any],
    *,
    max_retries: int = 3,
    retry_backoff_seconds: int = 60,
) -> None:
    """Perform a queued job; retry failures with exponential backoff."""
    try:
        perform_job(payload)
    except JobDeserializationError:
        # Retrying cannot fix a payload this worker does not understand
        raise
    except Exception as exc:
        if self.request.retries >= max_retries:
            log.error("job.dead_lettered", task_id=self.request.id, retries=self.request.retries, error=str(exc))
            raise
        countdown = retry_backoff_seconds * 2**self.request.retries
        raise self.retry(exc=exc, countdown=countdown, max_retries=max_retries) from exc
