"""Cooperative timeout enforcement for job execution.

``perform_with_deadline`` bounds a unit of work to a maximum duration.  The
unit runs on a dedicated thread that inherits the caller's contextvars
(request id, log bindings, enclosing deadline); the caller waits at most
``max_duration`` seconds for it.

Python cannot preempt a thread, so the timeout is *cooperative*:

- the caller always stops waiting at the deadline and gets ``TimeoutExpired``;
- the deadline is flagged as cancelled, and a body that calls
  ``check_deadline()`` at safe points stops with ``TimeoutExpired`` too;
- a body that never checks keeps running.  ``TimeoutPolicy.ABANDON`` leaves
  it to finish in the background (its late side effects must be tolerable);
  ``TimeoutPolicy.DRAIN`` makes the caller wait for it to stop before raising.

Architecture:
    ::

        caller thread                      deadline thread
        ─────────────                      ───────────────
        perform_with_deadline(unit, 5.0)
          ├─ copy_context() ─────────────▶ ctx.run(unit)
          ├─ wait(future, 5.0)                 │ check_deadline()
          │    done  → return result           │   ...
          │    timed out:                      │
          │      deadline.cancel() ─────────▶  │ check_deadline() raises
          │      DRAIN → wait(future)          ▼
          └─ raise TimeoutExpired

Nested deadlines: the effective duration is the smaller of the requested one
and whatever remains of an enclosing deadline.

Example:
    >>> perform_with_deadline(lambda: 42, 5.0)
    42
"""

from __future__ import annotations

import concurrent.futures
import contextvars
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from stagecoach.core.logging import get_logger

T = TypeVar("T")

log = get_logger(__name__)


class TimeoutExpired(TimeoutError):
    """Raised when an operation exceeds its deadline.

    Inherits from built-in TimeoutError for broad exception handling.

    Attributes:
        timeout: The timeout value that was exceeded
        elapsed: How long the operation ran before the caller gave up
        operation: Name/description of the operation
    """

    def __init__(
        self,
        timeout: float,
        elapsed: float | None = None,
        operation: str = "operation",
    ):
        self.timeout = timeout
        self.elapsed = elapsed
        self.operation = operation

        msg = f"Operation '{operation}' timed out after {timeout}s"
        if elapsed is not None:
            msg += f" (ran for {elapsed:.2f}s)"

        super().__init__(msg)


class TimeoutPolicy(str, Enum):
    """What happens to the timed-out work once the caller stops waiting."""

    ABANDON = "abandon"
    DRAIN = "drain"


@dataclass
class DeadlineContext:
    """Deadline state shared between the waiting caller and the running body.

    Attributes:
        deadline: Absolute deadline timestamp (monotonic clock)
        timeout_seconds: Effective timeout in seconds
        operation: Name/description of the operation
        start_time: When the deadline started
    """

    deadline: float
    timeout_seconds: float
    operation: str = "operation"
    start_time: float = field(default_factory=time.monotonic)
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    def remaining(self) -> float:
        """Remaining seconds; negative once expired."""
        return self.deadline - time.monotonic()

    @property
    def elapsed(self) -> float:
        """Elapsed time since start in seconds."""
        return time.monotonic() - self.start_time

    def is_expired(self) -> bool:
        """True if the deadline has passed or the caller gave up."""
        return self._cancelled.is_set() or time.monotonic() >= self.deadline

    def cancel(self) -> None:
        """Signal the body that nobody is waiting for it anymore."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


_current_deadline: contextvars.ContextVar[DeadlineContext | None] = contextvars.ContextVar(
    "stagecoach_deadline", default=None
)


def get_current_deadline() -> DeadlineContext | None:
    """Get the innermost active deadline, if any."""
    return _current_deadline.get()


def get_remaining_deadline() -> float | None:
    """Remaining seconds on the current deadline, or None outside one."""
    ctx = get_current_deadline()
    if ctx is None:
        return None
    return ctx.remaining()


def get_effective_timeout(requested: float) -> float:
    """Minimum of ``requested`` and the time left on an enclosing deadline."""
    current = get_current_deadline()
    if current is None:
        return requested
    return min(requested, current.remaining())


def check_deadline() -> None:
    """Cancellation point for cooperative bodies.

    Does nothing outside a deadline.

    Raises:
        TimeoutExpired: If the current deadline expired or was cancelled
    """
    ctx = get_current_deadline()
    if ctx is not None and ctx.is_expired():
        raise TimeoutExpired(
            timeout=ctx.timeout_seconds,
            elapsed=ctx.elapsed,
            operation=ctx.operation,
        )


def perform_with_deadline(
    unit_of_work: Callable[[], T],
    max_duration: float,
    operation: str | None = None,
    policy: TimeoutPolicy = TimeoutPolicy.ABANDON,
) -> T:
    """Run ``unit_of_work`` and give up waiting after ``max_duration`` seconds.

    Args:
        unit_of_work: Zero-argument callable
        max_duration: Maximum seconds to wait
        operation: Name for error messages and logs
        policy: ABANDON the body on expiry, or DRAIN it before raising

    Returns:
        Whatever ``unit_of_work`` returned

    Raises:
        TimeoutExpired: If the deadline passed first
        ValueError: If max_duration <= 0
        Exception: Any exception raised by ``unit_of_work``
    """
    if max_duration <= 0:
        raise ValueError(f"Timeout must be positive, got {max_duration}")

    op_name = operation or getattr(unit_of_work, "__name__", "operation")
    effective = get_effective_timeout(max_duration)
    now = time.monotonic()
    ctx = DeadlineContext(
        deadline=now + effective,
        timeout_seconds=effective,
        operation=op_name,
        start_time=now,
    )

    if effective <= 0:
        # Enclosing deadline already spent
        raise TimeoutExpired(timeout=effective, elapsed=0.0, operation=op_name)

    def body() -> T:
        _current_deadline.set(ctx)
        return unit_of_work()

    run_ctx = contextvars.copy_context()
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="deadline")
    try:
        future = pool.submit(run_ctx.run, body)
        done, _ = concurrent.futures.wait([future], timeout=effective)
        if future in done:
            return future.result()

        ctx.cancel()
        log.warning(
            "deadline.expired",
            operation=op_name,
            timeout=effective,
            policy=policy.value,
        )
        if policy is TimeoutPolicy.DRAIN:
            concurrent.futures.wait([future])
        raise TimeoutExpired(timeout=effective, elapsed=ctx.elapsed, operation=op_name)
    finally:
        # Never join an abandoned body here
        pool.shutdown(wait=False)


__all__ = [
    "TimeoutExpired",
    "TimeoutPolicy",
    "DeadlineContext",
    "get_current_deadline",
    "get_remaining_deadline",
    "get_effective_timeout",
    "check_deadline",
    "perform_with_deadline",
]
