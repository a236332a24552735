"""Crash containment for job bodies.

``perform_contained`` is about observability, not suppression: every failure
of a job body is recorded as a structured ``job.failed`` event (failure
kind, message, exception type, job name and the bound request id) and then
re-raised untouched, so the queue backend's own retry and dead-letter
policy still sees it.

The one exception is a *best-effort* job, such as a cleanup sweep, where a
single bad record must not abort a scheduled batch.  Its non-fatal failures
are logged and absorbed.  Fatal failures (``ContextRestoreError`` and any
error flagged ``fatal``) always propagate.

Failure kinds:
    ``timeout``     TimeoutExpired / TimeoutError raised inside the body
    ``<category>``  lower-cased ErrorCategory for everything else
"""

from __future__ import annotations

from collections.abc import Callable

from stagecoach.core.errors import categorize_error, failure_kind, is_fatal
from stagecoach.core.logging import get_logger

log = get_logger(__name__)


def perform_contained(
    unit_of_work: Callable[[], object],
    job_name: str = "unknown",
    best_effort: bool = False,
    request_id: str | None = None,
) -> None:
    """Run ``unit_of_work``, recording and classifying any failure.

    Args:
        unit_of_work: Zero-argument callable (the job body)
        job_name: Identity of the job for diagnostics
        best_effort: Absorb non-fatal failures instead of re-raising
        request_id: Request id the job ran under.  The ambient id has already
            been restored when a failure reaches this layer.

    Raises:
        Exception: The original failure, unless absorbed as best-effort
    """
    try:
        unit_of_work()
    except Exception as e:
        kind = failure_kind(e)
        fatal = is_fatal(e)
        log.error(
            "job.failed",
            job=job_name,
            request_id=request_id,
            failure_kind=kind,
            category=categorize_error(e).value,
            error_type=type(e).__name__,
            error=str(e),
            fatal=fatal,
            exc_info=True,
        )
        if best_effort and not fatal:
            log.warning("job.failure_absorbed", job=job_name, request_id=request_id, failure_kind=kind)
            return
        raise


__all__ = ["perform_contained"]
