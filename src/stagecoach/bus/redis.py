"""
Redis Pub/Sub message bus implementation.

Multi-node deployments need requests and replies to cross process
boundaries.  Redis Pub/Sub gives fire-and-forget delivery with minimal
latency; nothing is persisted, which matches the bus contract (a lost
request or reply simply ends in the request's timeout).

Wire format (JSON)::

    request  on <prefix>:<subject>
        {"reply_to": "<prefix>:_INBOX.<bus id>", "correlation_id": "...", "data": {...}}
    reply    on the request's reply_to channel
        {"correlation_id": "...", "data": {...}}
    message  on <prefix>:<subject> (publish, no reply expected)
        {"data": {...}}

Each bus instance listens on its own inbox channel and matches replies by
correlation id.  ``serve(subject, responder)`` lets a bus answer requests,
which is how the remote side of a request is written.

Tags:
    stagecoach, bus, redis, pub-sub, multi-node

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import json
import uuid
from collections.abc import Callable
from typing import Any

import redis.asyncio as aioredis

from stagecoach.bus.base import EventLoopBus
from stagecoach.core.logging import get_logger

log = get_logger(__name__)

Responder = Callable[[dict[str, Any]], dict[str, Any] | None]


def encode_request(payload: dict[str, Any], correlation_id: str, reply_to: str) -> str:
    return json.dumps({"reply_to": reply_to, "correlation_id": correlation_id, "data": payload})


def encode_reply(payload: dict[str, Any], correlation_id: str) -> str:
    return json.dumps({"correlation_id": correlation_id, "data": payload})


class RedisMessageBus(EventLoopBus):
    """Redis Pub/Sub transport for multi-node deployments.

    Example::

        bus = RedisMessageBus("redis://localhost:6379/2")
        bus.start()
        bus.request("diego.staging.start", request, timeout=900, handler=on_reply)
    """

    thread_name = "stagecoach-bus-redis"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        *,
        channel_prefix: str = "stagecoach:bus",
    ) -> None:
        super().__init__()
        self._redis_url = redis_url
        self._channel_prefix = channel_prefix
        self._inbox = f"{channel_prefix}:_INBOX.{uuid.uuid4().hex[:12]}"
        self._responders: dict[str, Responder] = {}
        self._redis: Any = None
        self._pubsub: Any = None
        self._listener_task: asyncio.Task | None = None

    @property
    def inbox(self) -> str:
        return self._inbox

    def channel(self, subject: str) -> str:
        return f"{self._channel_prefix}:{subject}"

    def serve(self, subject: str, responder: Responder) -> None:
        """Answer requests on ``subject`` with ``responder(payload)``.

        Call before ``start()``.  A responder returning None sends no reply.
        """
        self._responders[self.channel(subject)] = responder

    # ── transport hooks ──────────────────────────────────────────

    async def _connect(self) -> None:
        self._redis = aioredis.from_url(self._redis_url)
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self._inbox, *self._responders)
        self._listener_task = asyncio.create_task(self._listen())

    async def _disconnect(self) -> None:
        if self._listener_task:
            self._listener_task.cancel()
            try:
                await self._listener_task
            except asyncio.CancelledError:
                pass

        if self._pubsub:
            await self._pubsub.unsubscribe()
            await self._pubsub.aclose()

        if self._redis:
            await self._redis.aclose()

    async def _send_request(self, subject: str, payload: dict[str, Any], correlation_id: str) -> None:
        await self._redis.publish(self.channel(subject), encode_request(payload, correlation_id, self._inbox))

    async def _send(self, subject: str, payload: dict[str, Any]) -> None:
        await self._redis.publish(self.channel(subject), json.dumps({"data": payload}))

    # ── inbound ──────────────────────────────────────────────────

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                try:
                    await self._handle_message(message)
                except Exception as e:
                    # Keep listening after a bad message
                    log.error("bus.message_error", error_type=type(e).__name__, error=str(e))
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.error("bus.listener_error", error_type=type(e).__name__, error=str(e))

    async def _handle_message(self, message: dict[str, Any]) -> None:
        if message.get("type") != "message":
            return

        channel = message["channel"]
        if isinstance(channel, bytes):
            channel = channel.decode()

        try:
            data = json.loads(message["data"])
        except (TypeError, ValueError) as e:
            log.warning("bus.message_parse_error", channel=channel, error=str(e))
            return

        payload = (data.get("data") or {}) if isinstance(data, dict) else None
        if not isinstance(payload, dict):
            log.warning("bus.message_parse_error", channel=channel, error="expected a JSON object envelope")
            return

        if channel == self._inbox:
            correlation_id = data.get("correlation_id")
            if correlation_id is None:
                log.warning("bus.reply_without_correlation", channel=channel)
                return
            self._deliver(correlation_id, payload)
            return

        responder = self._responders.get(channel)
        if responder is None:
            return
        try:
            response = responder(payload)
        except Exception as e:
            log.warning("bus.responder_error", channel=channel, error_type=type(e).__name__, error=str(e))
            return
        if response is not None and data.get("reply_to"):
            await self._redis.publish(data["reply_to"], encode_reply(response, data["correlation_id"]))


__all__ = ["RedisMessageBus", "encode_request", "encode_reply"]
