"""Request-id propagation for background work.

A job is created while serving some external request and executed much
later on a worker.  The request id it was created under travels inside the
job (``RequestJob``) and is re-bound as the ambient id for the duration of
``perform``, so log lines emitted anywhere during the job are attributable to
the originating request.

The ambient id is a ``ContextVar``: every thread and asyncio task sees its own
value, and binding is always scoped.  Whatever value was ambient before a
wrapped call is the value ambient after it, on success and on failure.

Example:
    >>> run_with_context("req-123", lambda: get_request_id())
    'req-123'
    >>> get_request_id() is None
    True
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Any, TypeVar

import structlog

from stagecoach.core.errors import ContextRestoreError

T = TypeVar("T")

_request_id: ContextVar[str | None] = ContextVar("stagecoach_request_id", default=None)


def get_request_id() -> str | None:
    """Return the ambient request id, or None outside any request."""
    return _request_id.get()


def _restore(token: Token[str | None], log_tokens: Mapping[str, Token[Any]]) -> None:
    try:
        structlog.contextvars.reset_contextvars(**log_tokens)
        _request_id.reset(token)
    except (ValueError, RuntimeError) as e:
        raise ContextRestoreError(
            "Could not restore ambient request id",
            context={"request_id": token.var.get()},
            cause=e,
        ) from e


@contextmanager
def request_context(request_id: str | None) -> Generator[str | None, None, None]:
    """Bind ``request_id`` as the ambient id for the enclosed block.

    Raises:
        ContextRestoreError: If the previous value cannot be restored
    """
    token = _request_id.set(request_id)
    log_tokens = structlog.contextvars.bind_contextvars(request_id=request_id)
    try:
        yield request_id
    finally:
        _restore(token, log_tokens)


def run_with_context(context_value: str | None, unit_of_work: Callable[[], T]) -> T:
    """Run ``unit_of_work`` with ``context_value`` as the ambient request id.

    Failures of the unit propagate unchanged after the previous id has been
    restored.
    """
    with request_context(context_value):
        return unit_of_work()


__all__ = ["get_request_id", "request_context", "run_with_context"]
