"""Queue backend protocol - where serialized jobs go.

ARCHITECTURE
────────────
::

    QueueBackend (Protocol)
      └── .submit(payload, queue, *, priority, run_at) ─ accept, return ref

    Implementations:
      MemoryBackend  ─ records submissions, runs on demand   (testing)
      LocalBackend   ─ ThreadPool worker pool                (dev / single node)
      CeleryBackend  ─ broker-backed, at-least-once          (production)

``submit`` only means "accepted for eventual execution".  It must raise when
the backend cannot accept the job; it must never report failures of the job
itself, which happen later on a worker.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class QueueBackend(Protocol):
    """Backend adapter - how queued jobs reach a worker."""

    def submit(
        self,
        payload: dict[str, Any],
        queue: str,
        *,
        priority: int | None = None,
        run_at: datetime | None = None,
    ) -> str:
        """Hand a serialized job to the backend.

        Args:
            payload: Output of ``job_to_payload`` for the wrapped job
            queue: Concrete queue name, already resolved
            priority: Optional backend priority (higher runs first)
            run_at: Optional earliest execution time (UTC)

        Returns:
            Backend-specific reference (Celery task id, local ref, ...)

        Raises:
            Exception: Any backend error; the enqueuer wraps it in
                ``SubmissionError``
        """
        ...
