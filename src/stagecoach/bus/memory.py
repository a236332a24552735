"""
In-memory message bus implementation.

Single-process deployments and test suites need a bus that works without
external infrastructure.  Requests are recorded; a registered responder may
answer immediately, or a test can answer (or not) later with ``reply()``,
in any order, any number of times.

Tags:
    stagecoach, bus, in-memory, testing, single-node

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from stagecoach.bus.base import EventLoopBus
from stagecoach.core.logging import get_logger

log = get_logger(__name__)

Responder = Callable[[dict[str, Any]], dict[str, Any] | None]
Subscriber = Callable[[dict[str, Any]], None]


@dataclass(frozen=True)
class SentRequest:
    """A request as the transport saw it."""

    subject: str
    payload: dict[str, Any]
    correlation_id: str


class InMemoryMessageBus(EventLoopBus):
    """In-process bus with scriptable replies.

    Example::

        bus = InMemoryMessageBus()
        bus.start()
        bus.request("diego.staging.start", {"app_id": "a"}, timeout=30, handler=print)
        bus.flush()
        sent = bus.sent_requests("diego.staging.start")[0]
        bus.reply(sent.correlation_id, {"detected_buildpack": "ruby"})
        bus.flush()
    """

    thread_name = "stagecoach-bus-memory"

    def __init__(self) -> None:
        super().__init__()
        self._responders: dict[str, Responder] = {}
        self._subscribers: dict[str, list[Subscriber]] = {}
        self._sent: list[SentRequest] = []
        self._published: list[tuple[str, dict[str, Any]]] = []
        self._record_lock = threading.Lock()

    def respond_to(self, subject: str, responder: Responder) -> None:
        """Answer every request on ``subject`` with ``responder(payload)``.

        A responder returning None sends no reply.
        """
        self._responders[subject] = responder

    def subscribe(self, subject: str, subscriber: Subscriber) -> None:
        """Receive messages sent with ``publish`` on ``subject``."""
        self._subscribers.setdefault(subject, []).append(subscriber)

    def reply(self, correlation_id: str, payload: dict[str, Any]) -> None:
        """Send a reply for ``correlation_id`` from any thread."""
        loop = self._require_loop()
        loop.call_soon_threadsafe(self._deliver, correlation_id, payload)

    def sent_requests(self, subject: str | None = None) -> list[SentRequest]:
        with self._record_lock:
            return [r for r in self._sent if subject is None or r.subject == subject]

    def pending(self, subject: str | None = None) -> list[SentRequest]:
        """Sent requests still waiting for a reply or timeout."""
        with self._lock:
            waiting = set(self._waiters)
        return [r for r in self.sent_requests(subject) if r.correlation_id in waiting]

    def published(self, subject: str | None = None) -> list[dict[str, Any]]:
        with self._record_lock:
            return [p for s, p in self._published if subject is None or s == subject]

    async def _send_request(self, subject: str, payload: dict[str, Any], correlation_id: str) -> None:
        with self._record_lock:
            self._sent.append(SentRequest(subject, payload, correlation_id))
        responder = self._responders.get(subject)
        if responder is None:
            return
        response = responder(payload)
        if response is not None:
            self._deliver(correlation_id, response)

    async def _send(self, subject: str, payload: dict[str, Any]) -> None:
        with self._record_lock:
            self._published.append((subject, payload))
        for subscriber in self._subscribers.get(subject, []):
            try:
                subscriber(payload)
            except Exception as e:
                log.warning("bus.subscriber_error", subject=subject, error=str(e))


__all__ = ["InMemoryMessageBus", "SentRequest"]
