"""Event-loop bus core shared by every transport.

``EventLoopBus`` owns one asyncio event loop running on a dedicated thread.
All transport I/O, reply matching, timers and handler invocations happen on
that thread; ``request``/``publish`` may be called from any thread and only
schedule work onto it.

Correlation:
    Each request gets a fresh correlation id and a waiter holding its
    ``PendingReply``, handler and timer.  Whichever comes first, the matching
    reply or the timer, pops the waiter, so a handler can never fire twice
    and a late reply for an expired request is dropped.

Subclasses implement:
    ``_connect()`` / ``_disconnect()``                   transport lifecycle
    ``_send_request(subject, payload, correlation_id)``  publish a request
    ``_send(subject, payload)``                          publish a message
and call ``_deliver(correlation_id, payload)`` on the loop thread for every
inbound reply.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from asyncio import TimerHandle
from dataclasses import dataclass
from typing import Any

from stagecoach.bus import BusReply, PendingReply, ReplyHandler
from stagecoach.core.errors import BusError
from stagecoach.core.logging import get_logger

log = get_logger(__name__)


@dataclass
class _Waiter:
    pending: PendingReply
    handler: ReplyHandler | None
    timer: TimerHandle | None = None


class EventLoopBus:
    """Base class: single event-loop thread plus request/reply correlation."""

    thread_name = "stagecoach-bus"

    def __init__(self) -> None:
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._waiters: dict[str, _Waiter] = {}
        self._lock = threading.Lock()
        self._send_tasks: set[asyncio.Task] = set()

    # ── lifecycle ────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._loop is not None and self._loop.is_running()

    @property
    def loop_thread(self) -> threading.Thread | None:
        """The thread every handler runs on."""
        return self._thread

    def start(self) -> None:
        if self.running:
            return
        loop = asyncio.new_event_loop()
        started = threading.Event()

        def run() -> None:
            asyncio.set_event_loop(loop)
            loop.call_soon(started.set)
            loop.run_forever()

        self._loop = loop
        self._thread = threading.Thread(target=run, name=self.thread_name, daemon=True)
        self._thread.start()
        started.wait()
        asyncio.run_coroutine_threadsafe(self._connect(), loop).result()
        log.info("bus.started", transport=type(self).__name__)

    def stop(self) -> None:
        loop, thread = self._loop, self._thread
        if loop is None or thread is None:
            return
        try:
            asyncio.run_coroutine_threadsafe(self._disconnect(), loop).result(timeout=5)
        finally:
            loop.call_soon_threadsafe(self._cancel_all)
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=5)
            loop.close()
            self._loop = None
            self._thread = None
            log.info("bus.stopped", transport=type(self).__name__)

    def __enter__(self) -> EventLoopBus:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def flush(self, timeout: float = 5.0) -> None:
        """Wait until callbacks already scheduled on the loop have run."""
        loop = self._require_loop()
        for _ in range(3):
            asyncio.run_coroutine_threadsafe(asyncio.sleep(0), loop).result(timeout=timeout)

    # ── public API ───────────────────────────────────────────────

    def request(
        self,
        subject: str,
        payload: dict[str, Any],
        *,
        timeout: float,
        handler: ReplyHandler | None = None,
    ) -> PendingReply:
        loop = self._require_loop()
        if timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {timeout}")

        correlation_id = uuid.uuid4().hex
        pending = PendingReply(correlation_id=correlation_id, subject=subject)
        with self._lock:
            self._waiters[correlation_id] = _Waiter(pending=pending, handler=handler)

        loop.call_soon_threadsafe(self._begin_request, subject, payload, correlation_id, timeout)
        return pending

    def publish(self, subject: str, payload: dict[str, Any]) -> None:
        loop = self._require_loop()
        loop.call_soon_threadsafe(self._spawn, self._send(subject, payload), subject)

    # ── loop-thread internals ────────────────────────────────────

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if not self.running or self._loop is None:
            raise BusError(f"{type(self).__name__} is not running; call start() first")
        return self._loop

    def _begin_request(self, subject: str, payload: dict[str, Any], correlation_id: str, timeout: float) -> None:
        with self._lock:
            waiter = self._waiters.get(correlation_id)
        if waiter is None:
            return
        assert self._loop is not None
        waiter.timer = self._loop.call_later(timeout, self._expire, correlation_id)
        self._spawn(self._send_request(subject, payload, correlation_id), subject)

    def _spawn(self, coro, subject: str) -> None:
        task = asyncio.ensure_future(coro)
        # The loop only holds weak references to tasks
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)
        task.add_done_callback(lambda t: self._log_send_failure(t, subject))

    @staticmethod
    def _log_send_failure(task: asyncio.Future, subject: str) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            # The request's timer still fires; callers see a timeout
            log.error("bus.send_failed", subject=subject, error_type=type(exc).__name__, error=str(exc))

    def _pop(self, correlation_id: str) -> _Waiter | None:
        with self._lock:
            waiter = self._waiters.pop(correlation_id, None)
        if waiter is not None and waiter.timer is not None:
            waiter.timer.cancel()
        return waiter

    def _deliver(self, correlation_id: str, payload: dict[str, Any]) -> None:
        waiter = self._pop(correlation_id)
        if waiter is None:
            log.debug("bus.unmatched_reply", correlation_id=correlation_id)
            return
        self._fire(waiter, BusReply(payload=payload, correlation_id=correlation_id))

    def _expire(self, correlation_id: str) -> None:
        waiter = self._pop(correlation_id)
        if waiter is None:
            return
        log.debug("bus.request_timed_out", subject=waiter.pending.subject, correlation_id=correlation_id)
        self._fire(waiter, BusReply.timeout(correlation_id))

    def _fire(self, waiter: _Waiter, reply: BusReply) -> None:
        if not waiter.pending.resolve(reply) or waiter.handler is None:
            return
        try:
            waiter.handler(reply)
        except Exception as e:
            log.warning(
                "bus.handler_error",
                subject=waiter.pending.subject,
                correlation_id=reply.correlation_id,
                error_type=type(e).__name__,
                error=str(e),
                exc_info=True,
            )

    def _cancel_all(self) -> None:
        with self._lock:
            waiters = list(self._waiters.values())
            self._waiters.clear()
        for waiter in waiters:
            if waiter.timer is not None:
                waiter.timer.cancel()

    @property
    def outstanding(self) -> int:
        """Number of requests still waiting for a reply or timeout."""
        with self._lock:
            return len(self._waiters)

    # ── transport hooks ──────────────────────────────────────────

    async def _connect(self) -> None:
        return None

    async def _disconnect(self) -> None:
        return None

    async def _send_request(self, subject: str, payload: dict[str, Any], correlation_id: str) -> None:
        raise NotImplementedError

    async def _send(self, subject: str, payload: dict[str, Any]) -> None:
        raise NotImplementedError
