"""Queue backends: the runtimes that deliver serialized jobs to workers.

``CeleryBackend`` is imported from :mod:`stagecoach.execution.backends.celery`
directly so that importing this package does not configure a Celery app.
"""

from stagecoach.execution.backends.local import LocalBackend
from stagecoach.execution.backends.memory import MemoryBackend, Submission
from stagecoach.execution.backends.protocol import QueueBackend

__all__ = ["QueueBackend", "LocalBackend", "MemoryBackend", "Submission"]
