"""Stagecoach execution - background jobs from enqueue to worker.

ARCHITECTURE
────────────
::

    Enqueuer.enqueue(job, queue)
      │  wrap_job: TimeoutJob → ExceptionCatchingJob → RequestJob → job
      │  job_to_payload
      ▼
    QueueBackend.submit(payload, queue)
      ├─ MemoryBackend   (records submissions, tests)
      ├─ LocalBackend    (ThreadPool)
      └─ CeleryBackend   (durable, at-least-once)
      │
      ▼
    worker.perform_job(payload)
      │  job_from_payload via JobRegistry
      ▼
    job.perform()

MODULE MAP
──────────
  request_context.py  ─ ambient request id, run_with_context
  containment.py      ─ perform_contained, best-effort absorption
  timeout.py          ─ perform_with_deadline, DeadlineContext
  jobs.py             ─ Job protocol, wrapper chain, payloads
  registry.py         ─ job name → class
  enqueuer.py         ─ Enqueuer, LocalQueue, JobHandle
  worker.py           ─ perform_job
  tasks.py            ─ Celery app and task (imported by Celery workers)
  backends/           ─ QueueBackend implementations
"""

from stagecoach.execution.containment import perform_contained
from stagecoach.execution.enqueuer import (
    Enqueuer,
    JobHandle,
    LocalQueue,
    enqueue_job,
    get_default_enqueuer,
    set_default_enqueuer,
)
from stagecoach.execution.jobs import (
    ExceptionCatchingJob,
    Job,
    RequestJob,
    TimeoutJob,
    job_from_payload,
    job_to_payload,
    wrap_job,
)
from stagecoach.execution.registry import JobRegistry, get_default_registry, register_job
from stagecoach.execution.request_context import get_request_id, request_context, run_with_context
from stagecoach.execution.timeout import (
    DeadlineContext,
    TimeoutExpired,
    TimeoutPolicy,
    check_deadline,
    perform_with_deadline,
)
from stagecoach.execution.worker import perform_job

__all__ = [
    # Context
    "get_request_id",
    "request_context",
    "run_with_context",
    # Wrappers
    "perform_contained",
    "perform_with_deadline",
    "check_deadline",
    "DeadlineContext",
    "TimeoutExpired",
    "TimeoutPolicy",
    # Jobs
    "Job",
    "RequestJob",
    "ExceptionCatchingJob",
    "TimeoutJob",
    "wrap_job",
    "job_to_payload",
    "job_from_payload",
    "JobRegistry",
    "get_default_registry",
    "register_job",
    # Submission
    "Enqueuer",
    "JobHandle",
    "LocalQueue",
    "enqueue_job",
    "get_default_enqueuer",
    "set_default_enqueuer",
    "perform_job",
]
