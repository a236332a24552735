"""In-memory queue backend for testing and development.

Submissions are recorded and only run when ``run_pending()`` is called, so a
test can assert on exactly what was queued before anything executes.
Should NOT be used in production (no persistence, lost on exit).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from stagecoach.core.logging import get_logger
from stagecoach.execution.registry import JobRegistry
from stagecoach.execution.worker import perform_job

log = get_logger(__name__)


@dataclass
class Submission:
    """One accepted job."""

    ref: str
    payload: dict[str, Any]
    queue: str
    priority: int | None = None
    run_at: datetime | None = None
    status: str = "queued"
    error: str | None = field(default=None, repr=False)


class MemoryBackend:
    """Records submissions; performs them synchronously on demand.

    Example:
        >>> backend = MemoryBackend()
        >>> handle = Enqueuer(backend).enqueue(job, queue="cc-api-0")
        >>> backend.submissions[0].queue
        'cc-api-0'
        >>> backend.run_pending()
    """

    def __init__(self, registry: JobRegistry | None = None):
        self.registry = registry
        self.available = True
        self.submissions: list[Submission] = []

    def submit(
        self,
        payload: dict[str, Any],
        queue: str,
        *,
        priority: int | None = None,
        run_at: datetime | None = None,
    ) -> str:
        if not self.available:
            raise ConnectionError("memory backend unavailable")
        ref = f"mem-{uuid.uuid4().hex[:8]}"
        self.submissions.append(Submission(ref, payload, queue, priority, run_at))
        return ref

    def pending(self) -> list[Submission]:
        return [s for s in self.submissions if s.status == "queued"]

    def run_pending(self) -> list[Submission]:
        """Perform every queued submission in order.

        Job failures are recorded on the submission, never raised, the same
        way a real worker would report them out of band.
        """
        ran = []
        for submission in self.pending():
            submission.status = "running"
            try:
                perform_job(submission.payload, self.registry)
                submission.status = "completed"
            except Exception as e:
                submission.status = "failed"
                submission.error = str(e)
                log.info("memory_backend.job_failed", ref=submission.ref, error=str(e))
            ran.append(submission)
        return ran

    def clear(self) -> None:
        """Clear all submissions (for testing)."""
        self.submissions.clear()
