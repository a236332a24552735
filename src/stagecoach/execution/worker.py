"""Worker-side entry point for queued jobs.

Every backend ends up calling :func:`perform_job` with the payload produced
by the enqueuer: the wrapper chain is rebuilt from the payload and performed.
Failures are logged here and re-raised so the backend's own retry and
dead-letter policy applies; the original caller has long since returned.
"""

from __future__ import annotations

from typing import Any

from stagecoach.core.errors import failure_kind
from stagecoach.core.logging import get_logger
from stagecoach.execution.jobs import job_from_payload
from stagecoach.execution.registry import JobRegistry
from stagecoach.execution.timeout import TimeoutExpired

log = get_logger(__name__)


def perform_job(payload: dict[str, Any], registry: JobRegistry | None = None) -> None:
    """Deserialize a queued job and perform it.

    Raises:
        JobDeserializationError: If the payload cannot be rebuilt
        TimeoutExpired: If the job exceeded its deadline
        Exception: Any failure the job's containment layer did not absorb
    """
    job = job_from_payload(payload, registry)
    log.debug("job.started", job=job.job_name)
    try:
        job.perform()
    except TimeoutExpired as e:
        # Raised by the outermost wrapper, so containment never saw it
        log.error(
            "job.timed_out",
            job=job.job_name,
            failure_kind=failure_kind(e),
            timeout=e.timeout,
            error=str(e),
        )
        raise
    log.debug("job.completed", job=job.job_name)


__all__ = ["perform_job"]
