"""Enqueuer - fire-and-forget submission of wrapped jobs.

``Enqueuer.enqueue(job, queue=...)`` wraps the job in the fixed chain
(timeout, containment, request id), serializes it and hands it to a queue
backend.  The caller gets a :class:`JobHandle` back and never waits for the
job itself.

Two failure channels are kept apart:

- *submission* failures (backend unreachable, pool shut down) raise
  ``SubmissionError`` right here, at the call site;
- *execution* failures happen later on a worker and surface only through
  logs and the backend's retry/dead-letter handling.

Queue selection:
    A ``LocalQueue`` names the queue private to one controller process
    (``cc-<name>-<index>``); a plain string is used as-is; ``None`` means the
    shared default queue.  Either way the name is concrete at submission time.

Example:
    >>> enqueuer = Enqueuer(MemoryBackend(), settings)
    >>> handle = enqueuer.enqueue(BlobstoreUpload(...), queue=LocalQueue("api", 0))
    >>> handle.queue
    'cc-api-0'
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from stagecoach.core.errors import SubmissionError
from stagecoach.core.logging import get_logger
from stagecoach.core.settings import StagecoachSettings, get_settings
from stagecoach.execution.backends.protocol import QueueBackend
from stagecoach.execution.jobs import Job, job_to_payload, wrap_job
from stagecoach.execution.request_context import get_request_id
from stagecoach.execution.timeout import TimeoutPolicy

log = get_logger(__name__)


@dataclass(frozen=True)
class LocalQueue:
    """The queue served only by the workers of one controller process."""

    name: str
    index: int

    def __str__(self) -> str:
        return f"cc-{self.name}-{self.index}"

    @classmethod
    def from_settings(cls, settings: StagecoachSettings) -> LocalQueue:
        return cls(settings.queue_name, settings.queue_index)


QueueSelector = LocalQueue | str | None


@dataclass(frozen=True)
class JobHandle:
    """Opaque receipt: the job was accepted for eventual execution."""

    ref: str
    queue: str
    job_name: str


class Enqueuer:
    """Wraps jobs and submits them to a queue backend."""

    def __init__(
        self,
        backend: QueueBackend,
        settings: StagecoachSettings | None = None,
        *,
        timeout_policy: TimeoutPolicy = TimeoutPolicy.ABANDON,
    ):
        self.backend = backend
        self.settings = settings or get_settings()
        self.timeout_policy = timeout_policy

    def resolve_queue(self, queue: QueueSelector) -> str:
        """Turn a queue selector into a concrete queue name."""
        if queue is None:
            return self.settings.default_queue
        name = str(queue)
        if not name:
            raise ValueError("queue name must not be empty")
        return name

    def enqueue(
        self,
        job: Job,
        queue: QueueSelector = None,
        *,
        priority: int | None = None,
        run_at: datetime | None = None,
    ) -> JobHandle:
        """Wrap ``job`` and submit it; return without waiting for execution.

        The ambient request id and the configured timeout for the job's
        ``job_name`` are captured now, on the calling thread.

        Raises:
            SubmissionError: If the backend did not accept the job
        """
        queue_name = self.resolve_queue(queue)
        wrapped = wrap_job(
            job,
            request_id=get_request_id(),
            timeout_seconds=self.settings.timeout_for(job.job_name),
            policy=self.timeout_policy,
        )
        payload = job_to_payload(wrapped)

        try:
            ref = self.backend.submit(payload, queue_name, priority=priority, run_at=run_at)
        except Exception as e:
            log.error(
                "job.submission_failed",
                job=job.job_name,
                queue=queue_name,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise SubmissionError(
                f"Could not enqueue {job.job_name} on {queue_name}: {e}",
                context={"job": job.job_name, "queue": queue_name},
                cause=e,
            ) from e

        log.info("job.enqueued", job=job.job_name, queue=queue_name, ref=ref)
        return JobHandle(ref=ref, queue=queue_name, job_name=job.job_name)


_default_enqueuer: Enqueuer | None = None


def get_default_enqueuer() -> Enqueuer:
    """Process-wide enqueuer built from settings on first use."""
    global _default_enqueuer
    if _default_enqueuer is None:
        from stagecoach.core.factory import create_queue_backend

        settings = get_settings()
        _default_enqueuer = Enqueuer(create_queue_backend(settings), settings)
    return _default_enqueuer


def set_default_enqueuer(enqueuer: Enqueuer | None) -> None:
    """Replace (or with None, reset) the process-wide enqueuer."""
    global _default_enqueuer
    _default_enqueuer = enqueuer


def enqueue_job(
    job: Job,
    queue: QueueSelector = None,
    *,
    priority: int | None = None,
    run_at: datetime | None = None,
) -> JobHandle:
    """Enqueue through the process-wide enqueuer."""
    return get_default_enqueuer().enqueue(job, queue, priority=priority, run_at=run_at)


__all__ = [
    "LocalQueue",
    "QueueSelector",
    "JobHandle",
    "Enqueuer",
    "get_default_enqueuer",
    "set_default_enqueuer",
    "enqueue_job",
]
