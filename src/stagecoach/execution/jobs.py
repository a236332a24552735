"""Job contract and the wrapper chain every enqueued job runs inside.

A job is any object with ``perform()`` and a ``job_name``.  Before a job is
queued it is wrapped, outermost first::

    TimeoutJob              bounds the whole execution, setup/teardown included
      └─ ExceptionCatchingJob   records failures, absorbs them for best-effort jobs
           └─ RequestJob          binds the originating request id around the body
                └─ leaf job

The order is fixed.  Containment sees failures only after the request id has
been bound and restored, and the id is bound as close to the business logic as
possible.  A failure to restore the id is fatal and passes through containment.

Every wrapper is a dataclass exposing ``to_payload()``; ``job_from_payload``
rebuilds the same chain on the worker side.  Leaf jobs must be dataclasses
registered with :func:`~stagecoach.execution.registry.register_job`.

Payload shape::

    {"type": "timeout", "timeout_seconds": 60.0, "policy": "abandon",
     "job": {"type": "contained", "best_effort": false,
             "job": {"type": "request", "request_id": "abc",
                     "job": {"type": "job", "name": "blobstore_upload",
                             "args": {...}}}}}
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from stagecoach.core.errors import JobDeserializationError
from stagecoach.execution.containment import perform_contained
from stagecoach.execution.registry import JobRegistry, get_default_registry
from stagecoach.execution.request_context import run_with_context
from stagecoach.execution.timeout import TimeoutPolicy, perform_with_deadline


@runtime_checkable
class Job(Protocol):
    """Opaque unit of background work.

    ``perform`` takes no arguments and is called for its side effects only.
    ``job_name`` identifies the job in logs and selects its timeout.  A job
    may also set ``best_effort = True`` to have its failures absorbed.
    """

    @property
    def job_name(self) -> str: ...

    def perform(self) -> None: ...


@dataclass
class RequestJob:
    """Runs the wrapped job with ``request_id`` as the ambient request id."""

    job: Job
    request_id: str | None = None

    @property
    def job_name(self) -> str:
        return self.job.job_name

    def perform(self) -> None:
        run_with_context(self.request_id, self.job.perform)

    def to_payload(self) -> dict[str, Any]:
        return {"type": "request", "request_id": self.request_id, "job": job_to_payload(self.job)}


@dataclass
class ExceptionCatchingJob:
    """Records failures of the wrapped job; absorbs them if ``best_effort``."""

    job: Job
    best_effort: bool = False

    @property
    def job_name(self) -> str:
        return self.job.job_name

    def perform(self) -> None:
        perform_contained(
            self.job.perform,
            job_name=self.job_name,
            best_effort=self.best_effort,
            request_id=getattr(self.job, "request_id", None),
        )

    def to_payload(self) -> dict[str, Any]:
        return {"type": "contained", "best_effort": self.best_effort, "job": job_to_payload(self.job)}


@dataclass
class TimeoutJob:
    """Bounds the wrapped job to ``timeout_seconds`` (cooperative timeout)."""

    job: Job
    timeout_seconds: float
    policy: TimeoutPolicy = TimeoutPolicy.ABANDON

    @property
    def job_name(self) -> str:
        return self.job.job_name

    def perform(self) -> None:
        perform_with_deadline(
            self.job.perform,
            self.timeout_seconds,
            operation=self.job_name,
            policy=self.policy,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "timeout",
            "timeout_seconds": self.timeout_seconds,
            "policy": self.policy.value,
            "job": job_to_payload(self.job),
        }


def wrap_job(
    job: Job,
    *,
    request_id: str | None,
    timeout_seconds: float,
    best_effort: bool | None = None,
    policy: TimeoutPolicy = TimeoutPolicy.ABANDON,
) -> TimeoutJob:
    """Assemble the fixed wrapper chain around a leaf job.

    ``best_effort`` defaults to the job's own ``best_effort`` attribute.
    """
    if best_effort is None:
        best_effort = bool(getattr(job, "best_effort", False))
    return TimeoutJob(
        ExceptionCatchingJob(RequestJob(job, request_id), best_effort=best_effort),
        timeout_seconds=timeout_seconds,
        policy=policy,
    )


def job_to_payload(job: Job) -> dict[str, Any]:
    """Serialize a wrapper chain or leaf job to a JSON-safe dict."""
    to_payload = getattr(job, "to_payload", None)
    if callable(to_payload):
        return to_payload()
    if not dataclasses.is_dataclass(job):
        raise TypeError(f"Leaf job {type(job).__qualname__} must be a dataclass to be queued")
    return {"type": "job", "name": job.job_name, "args": dataclasses.asdict(job)}


def job_from_payload(payload: dict[str, Any], registry: JobRegistry | None = None) -> Job:
    """Rebuild a job (and its wrappers) from ``job_to_payload`` output.

    Raises:
        JobDeserializationError: If the payload is malformed or names an
            unregistered job
    """
    registry = registry or get_default_registry()
    try:
        match payload["type"]:
            case "timeout":
                return TimeoutJob(
                    job_from_payload(payload["job"], registry),
                    timeout_seconds=float(payload["timeout_seconds"]),
                    policy=TimeoutPolicy(payload.get("policy", TimeoutPolicy.ABANDON.value)),
                )
            case "contained":
                return ExceptionCatchingJob(
                    job_from_payload(payload["job"], registry),
                    best_effort=bool(payload.get("best_effort", False)),
                )
            case "request":
                return RequestJob(job_from_payload(payload["job"], registry), payload.get("request_id"))
            case "job":
                job_cls = registry.get(payload["name"])
                return job_cls(**payload.get("args", {}))
            case other:
                raise JobDeserializationError(f"Unknown job payload type {other!r}")
    except JobDeserializationError:
        raise
    except (KeyError, TypeError, ValueError) as e:
        raise JobDeserializationError(f"Malformed job payload: {e}", cause=e) from e


__all__ = [
    "Job",
    "RequestJob",
    "ExceptionCatchingJob",
    "TimeoutJob",
    "wrap_job",
    "job_to_payload",
    "job_from_payload",
]
