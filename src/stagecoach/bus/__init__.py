"""Asynchronous request/reply message bus.

Why This Package Exists
-----------------------
Staging is a remote operation: the controller publishes a request and some
other component answers much later, or never.  The bus turns that into a
fire-and-forget ``request`` whose reply is delivered at most once, either
as the genuine correlated reply or as a synthetic timeout.

Contract::

    pending = bus.request("diego.staging.start", payload, timeout=60, handler=on_reply)
    # returns immediately
    # later, on the bus event-loop thread, exactly one of:
    #   on_reply(BusReply(payload={...}, correlation_id=..., timed_out=False))
    #   on_reply(BusReply(payload={"timeout": True}, correlation_id=..., timed_out=True))

Every handler of a bus runs on that bus's single event-loop thread.  Handlers
must therefore be quick; expensive follow-up work belongs on a worker pool.

Modules
-------
base      EventLoopBus -- loop thread, correlation, timers, single-fire
memory    InMemoryMessageBus -- in-process transport, scriptable replies
redis     RedisMessageBus -- Redis Pub/Sub transport, multi-node
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

__all__ = [
    "BusReply",
    "PendingReply",
    "ReplyHandler",
    "MessageBus",
    "TIMEOUT_PAYLOAD",
]

TIMEOUT_PAYLOAD: dict[str, Any] = {"timeout": True}


@dataclass(frozen=True)
class BusReply:
    """What a reply handler receives: a real reply or the timeout sentinel."""

    payload: dict[str, Any]
    correlation_id: str
    timed_out: bool = False

    @classmethod
    def timeout(cls, correlation_id: str) -> BusReply:
        return cls(payload=dict(TIMEOUT_PAYLOAD), correlation_id=correlation_id, timed_out=True)


ReplyHandler = Callable[[BusReply], None]


@dataclass
class PendingReply:
    """Single-fire channel for one outstanding request.

    The first ``resolve`` wins; later ones return False and change nothing.
    """

    correlation_id: str
    subject: str
    _reply: BusReply | None = field(default=None, init=False, repr=False)
    _done: threading.Event = field(default_factory=threading.Event, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def resolve(self, reply: BusReply) -> bool:
        with self._lock:
            if self._done.is_set():
                return False
            self._reply = reply
            self._done.set()
            return True

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: float | None = None) -> BusReply | None:
        """Block until resolved; None if ``timeout`` passes first."""
        if not self._done.wait(timeout):
            return None
        return self._reply


@runtime_checkable
class MessageBus(Protocol):
    """Protocol for request/reply bus implementations."""

    def start(self) -> None:
        """Start the event-loop thread and connect the transport."""
        ...

    def stop(self) -> None:
        """Disconnect and stop the event-loop thread; pending handlers never fire."""
        ...

    def request(
        self,
        subject: str,
        payload: dict[str, Any],
        *,
        timeout: float,
        handler: ReplyHandler | None = None,
    ) -> PendingReply:
        """Publish ``payload`` on ``subject`` and await one correlated reply.

        Returns immediately.  ``handler`` runs at most once, on the bus
        thread, with the reply or with ``BusReply.timeout`` after ``timeout``
        seconds.

        Raises:
            BusError: If the bus is not running
        """
        ...

    def publish(self, subject: str, payload: dict[str, Any]) -> None:
        """Publish without expecting a reply."""
        ...
