"""
Structured error types for stagecoach.

Every failure that crosses a component boundary is a ``StagecoachError``
subclass carrying a category, retry semantics and a ``fatal`` flag.  The
crash-containment wrapper reads those attributes to decide whether a
failure may be absorbed (best-effort jobs) or must propagate to the queue
backend's retry/dead-letter policy.

Architecture:
    ::

        StagecoachError (category, retryable, fatal, context, cause)
        ├── SubmissionError          QUEUE      retryable   enqueue failed
        ├── JobDeserializationError  VALIDATION             bad job payload
        ├── ContextRestoreError      INTERNAL   fatal       ambient state broken
        ├── BusError                 TRANSPORT  retryable   message bus failure
        └── StagingError             STAGING                staging protocol

    ``TimeoutExpired`` is deliberately *not* part of this tree; it lives in
    :mod:`stagecoach.execution.timeout` and subclasses the builtin
    ``TimeoutError`` so generic handlers still see it as a timeout.

Examples:
    >>> try:
    ...     raise ConnectionError("broker down")
    ... except ConnectionError as e:
    ...     err = SubmissionError("could not enqueue", cause=e)
    >>> err.retryable
    True
    >>> err.to_dict()["category"]
    'QUEUE'

Tags:
    error-handling, exception-hierarchy, retry-logic, stagecoach

Doc-Types:
    api-reference
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and log routing."""

    QUEUE = "QUEUE"
    TRANSPORT = "TRANSPORT"
    TIMEOUT = "TIMEOUT"
    STAGING = "STAGING"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    NETWORK = "NETWORK"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


class StagecoachError(Exception):
    """Base exception for all stagecoach errors.

    Subclasses set ``default_category``, ``default_retryable`` and
    ``default_fatal``; each can be overridden per instance.

    Attributes:
        message: Human-readable message
        category: ErrorCategory for classification
        retryable: Whether the operation may be retried
        fatal: Whether containment layers must always propagate it
        context: Free-form structured metadata for logging
        cause: Underlying exception, also set as ``__cause__``
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False
    default_fatal: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        fatal: bool | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.fatal = fatal if fatal is not None else self.default_fatal
        self.context = dict(context or {})
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StagecoachError:
        """Add context to this error (fluent API).

        Usage:
            raise SubmissionError("Failed").with_context(queue="cc-api-0")
        """
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
            "fatal": self.fatal,
            "context": self.context,
            "cause": repr(self.cause) if self.cause is not None else None,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# EXECUTION PIPELINE ERRORS
# =============================================================================


class SubmissionError(StagecoachError):
    """The queue backend did not accept a job.

    Reported synchronously to the caller of ``Enqueuer.enqueue``; never
    conflated with failures of the job body, which happen later on a worker.
    """

    default_category = ErrorCategory.QUEUE
    default_retryable = True


class JobDeserializationError(StagecoachError):
    """A queued payload could not be turned back into a job."""

    default_category = ErrorCategory.VALIDATION


class ContextRestoreError(StagecoachError):
    """The ambient request context could not be restored after a job.

    Indicates a corrupted execution environment; always fatal.
    """

    default_category = ErrorCategory.INTERNAL
    default_fatal = True


# =============================================================================
# MESSAGING / STAGING ERRORS
# =============================================================================


class BusError(StagecoachError):
    """The message bus could not publish or is not running."""

    default_category = ErrorCategory.TRANSPORT
    default_retryable = True


class StagingError(StagecoachError):
    """The staging dispatch protocol was used incorrectly."""

    default_category = ErrorCategory.STAGING


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, StagecoachError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def is_fatal(error: BaseException) -> bool:
    """Check if an error must never be absorbed by a containment layer."""
    if isinstance(error, StagecoachError):
        return error.fatal
    # Interpreter-level conditions are never contained.
    return not isinstance(error, Exception)


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StagecoachError):
        return error.category
    if isinstance(error, TimeoutError):
        return ErrorCategory.TIMEOUT
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.VALIDATION
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


def failure_kind(error: BaseException) -> str:
    """Short failure kind used in ``job.failed`` log events.

    Timeouts are reported as ``"timeout"`` so they stay distinguishable from
    business-logic failures; everything else is its lower-cased category.
    """
    category = categorize_error(error)
    if category is ErrorCategory.TIMEOUT:
        return "timeout"
    return category.value.lower()


__all__ = [
    "ErrorCategory",
    "StagecoachError",
    "SubmissionError",
    "JobDeserializationError",
    "ContextRestoreError",
    "BusError",
    "StagingError",
    "is_retryable",
    "is_fatal",
    "categorize_error",
    "failure_kind",
]
