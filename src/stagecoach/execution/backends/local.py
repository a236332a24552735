"""Local backend - ThreadPool worker pool in the current process.

Sits between ``MemoryBackend`` (nothing runs until asked) and
``CeleryBackend`` (needs a broker and worker processes): jobs run
concurrently on a thread pool as soon as they are submitted.  Nothing is
persisted, so queued work is lost if the process dies.

ARCHITECTURE
────────────
::

    LocalBackend(max_workers=4)
      ├── .submit(payload, queue)  ─ pool.submit(perform_job, payload)
      ├── .get_status(ref)         ─ poll Future
      ├── .wait(ref, timeout)      ─ block until done (tests, shutdown)
      └── .shutdown()              ─ drain pool; later submits raise

Queue names and priorities are accepted for interface parity and logged;
every job shares the same pool.  ``run_at`` delays submission with a timer.
"""

from __future__ import annotations

import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from datetime import UTC, datetime
from typing import Any

from stagecoach.core.logging import get_logger
from stagecoach.execution.registry import JobRegistry
from stagecoach.execution.worker import perform_job

log = get_logger(__name__)


class LocalBackend:
    """ThreadPoolExecutor-based worker pool."""

    def __init__(self, max_workers: int = 4, registry: JobRegistry | None = None):
        self.pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="stagecoach-worker")
        self.registry = registry
        self._futures: dict[str, Future] = {}
        self._ready: dict[str, threading.Event] = {}
        self._lock = threading.Lock()

    def submit(
        self,
        payload: dict[str, Any],
        queue: str,
        *,
        priority: int | None = None,
        run_at: datetime | None = None,
    ) -> str:
        """Queue the payload on the pool and return immediately.

        Raises:
            RuntimeError: If the pool has been shut down
        """
        ref = f"local-{uuid.uuid4().hex[:8]}"
        delay = (run_at - datetime.now(UTC)).total_seconds() if run_at is not None else 0.0

        ready = threading.Event()
        with self._lock:
            self._ready[ref] = ready

        if delay > 0:
            timer = threading.Timer(delay, self._start, args=(ref, payload, ready))
            timer.daemon = True
            timer.start()
        else:
            try:
                self._start(ref, payload, ready)
            except RuntimeError:
                with self._lock:
                    self._ready.pop(ref, None)
                raise

        log.debug("local_backend.submitted", ref=ref, queue=queue, priority=priority, delay=max(delay, 0.0))
        return ref

    def _start(self, ref: str, payload: dict[str, Any], ready: threading.Event) -> None:
        future = self.pool.submit(perform_job, payload, self.registry)
        with self._lock:
            self._futures[ref] = future
        ready.set()

    def get_status(self, ref: str) -> str | None:
        """Get status from future state."""
        with self._lock:
            if ref not in self._ready:
                return None
            future = self._futures.get(ref)

        if future is None:
            return "scheduled"
        if future.cancelled():
            return "cancelled"
        if future.done():
            return "completed" if future.exception() is None else "failed"
        if future.running():
            return "running"
        return "queued"

    def wait(self, ref: str, timeout: float | None = None) -> str | None:
        """Block until the job behind ``ref`` finished; return its status."""
        with self._lock:
            ready = self._ready.get(ref)
        if ready is None or not ready.wait(timeout):
            return self.get_status(ref)
        with self._lock:
            future = self._futures[ref]
        wait_futures([future], timeout=timeout)
        return self.get_status(ref)

    def shutdown(self, wait: bool = True) -> None:
        """Shut the pool down; subsequent submissions fail."""
        self.pool.shutdown(wait=wait)

    def __enter__(self) -> LocalBackend:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.shutdown(wait=True)
