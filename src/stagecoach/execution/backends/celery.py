"""Celery backend - durable, at-least-once delivery via a broker.

WHY
───
Production deployments need jobs to survive a restart of the process that
queued them and to be spread over many worker machines.  Celery provides
broker-backed queues, acknowledgement after execution (``acks_late``) and
retries; this backend wraps it behind the ``QueueBackend`` protocol.

ARCHITECTURE
────────────
::

    CeleryBackend(app, max_retries=3, retry_backoff_seconds=60)
      └── .submit(payload, queue) ─ app.send_task("stagecoach.perform_job",
                                                  args=[payload], queue=queue)

    Worker side: ``celery -A stagecoach.execution.tasks worker -Q cc-api-0``

The retry policy is configuration handed in from settings, not decided here.
``retry``/``retry_policy`` bound how hard the *publisher* tries to reach the
broker; if it still cannot, ``send_task`` raises and the enqueuer turns that
into ``SubmissionError``.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from celery import Celery

PERFORM_JOB_TASK = "stagecoach.perform_job"


class CeleryBackend:
    """Celery-based backend for production."""

    def __init__(
        self,
        celery_app: Celery,
        *,
        max_retries: int = 3,
        retry_backoff_seconds: int = 60,
        publish_retries: int = 3,
    ):
        self.celery_app = celery_app
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.publish_retries = publish_retries

    def submit(
        self,
        payload: dict[str, Any],
        queue: str,
        *,
        priority: int | None = None,
        run_at: datetime | None = None,
    ) -> str:
        """Send the payload to the worker task on ``queue``.

        The Celery task id is returned as the reference.
        """
        options: dict[str, Any] = {
            "queue": queue,
            "retry": self.publish_retries > 0,
            "retry_policy": {
                "max_retries": self.publish_retries,
                "interval_start": 0,
                "interval_step": 0.5,
                "interval_max": 2,
            },
        }
        if priority is not None:
            options["priority"] = priority
        if run_at is not None:
            options["eta"] = run_at

        async_result = self.celery_app.send_task(
            PERFORM_JOB_TASK,
            args=[payload],
            kwargs={
                "max_retries": self.max_retries,
                "retry_backoff_seconds": self.retry_backoff_seconds,
            },
            **options,
        )
        return async_result.id

    def get_status(self, ref: str) -> str | None:
        """Map the Celery state of ``ref`` to a stagecoach status."""
        state = self.celery_app.AsyncResult(ref).state
        if state is None:
            return None
        state_map = {
            "PENDING": "queued",
            "RECEIVED": "queued",
            "STARTED": "running",
            "SUCCESS": "completed",
            "FAILURE": "failed",
            "REVOKED": "cancelled",
            "REJECTED": "failed",
            "RETRY": "queued",
        }
        return state_map.get(state, state.lower())
