"""Job registry - name to job class lookup.

Jobs cross a process boundary as JSON payloads naming the job by its
``job_name``.  A worker turns the name back into a class through this
registry, so every leaf job must be registered in the worker process
(importing the module that defines it is enough when the decorator is used).

Example:
    >>> @register_job("app_usage_events_cleanup")
    ... @dataclass
    ... class AppUsageEventsCleanup:
    ...     cutoff_age_in_days: int
    ...     job_name = "app_usage_events_cleanup"
    ...     def perform(self) -> None: ...
    >>> get_default_registry().get("app_usage_events_cleanup")
    <class 'AppUsageEventsCleanup'>

Guardrails:
    - Use the global registry in production code; pass an explicit
      ``JobRegistry`` in tests.
    - Call ``reset_default_registry()`` in test fixtures.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

C = TypeVar("C", bound=type)


class JobRegistry:
    """Injectable job registry."""

    def __init__(self) -> None:
        self._jobs: dict[str, type] = {}
        self._metadata: dict[str, dict[str, Any]] = {}

    def register(self, name: str, job_cls: type, description: str | None = None) -> None:
        """Register a job class under ``name``.

        Raises:
            ValueError: If another class is already registered under ``name``
        """
        existing = self._jobs.get(name)
        if existing is not None and existing is not job_cls:
            raise ValueError(f"Job {name!r} already registered to {existing.__qualname__}")
        self._jobs[name] = job_cls
        self._metadata[name] = {
            "name": name,
            "class": job_cls.__qualname__,
            "description": description,
        }

    def get(self, name: str) -> type:
        """Get a job class.

        Raises:
            ValueError: If no job is registered under ``name``
        """
        if name not in self._jobs:
            raise ValueError(f"No job registered for {name!r}. Available jobs: {sorted(self._jobs) or 'none'}")
        return self._jobs[name]

    def has(self, name: str) -> bool:
        return name in self._jobs

    def list_jobs(self) -> list[dict[str, Any]]:
        """List registered jobs with their metadata."""
        return [self._metadata[name].copy() for name in sorted(self._metadata)]

    def unregister(self, name: str) -> bool:
        if name in self._jobs:
            del self._jobs[name]
            del self._metadata[name]
            return True
        return False

    def clear(self) -> None:
        """Clear all jobs (for testing)."""
        self._jobs.clear()
        self._metadata.clear()


# === GLOBAL DEFAULT REGISTRY ===

_default_registry: JobRegistry | None = None


def get_default_registry() -> JobRegistry:
    """Get the global default registry, creating it lazily."""
    global _default_registry
    if _default_registry is None:
        _default_registry = JobRegistry()
    return _default_registry


def reset_default_registry() -> None:
    """Reset the global registry (for testing)."""
    global _default_registry
    _default_registry = None


def register_job(
    name: str,
    registry: JobRegistry | None = None,
    description: str | None = None,
) -> Callable[[C], C]:
    """Class decorator registering a leaf job under ``name``."""

    def decorator(job_cls: C) -> C:
        target = registry or get_default_registry()
        target.register(name, job_cls, description=description or job_cls.__doc__)
        return job_cls

    return decorator


__all__ = ["JobRegistry", "get_default_registry", "reset_default_registry", "register_job"]
