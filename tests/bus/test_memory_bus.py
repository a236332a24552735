"""Tests for the event-loop bus core through the in-memory transport."""

import asyncio
import threading
import time

import pytest
from structlog.testing import capture_logs

from stagecoach.bus import TIMEOUT_PAYLOAD, BusReply, MessageBus, PendingReply
from stagecoach.bus.memory import InMemoryMessageBus
from stagecoach.core.errors import BusError


class Recorder:
    """Reply handler recording replies and the thread they arrived on."""

    def __init__(self):
        self.replies: list[BusReply] = []
        self.threads: list[str] = []
        self.called = threading.Event()

    def __call__(self, reply: BusReply) -> None:
        self.replies.append(reply)
        self.threads.append(threading.current_thread().name)
        self.called.set()


class TestPendingReply:
    def test_single_fire(self):
        pending = PendingReply("cid", "subject")
        first = BusReply({"a": 1}, "cid")
        assert pending.resolve(first)
        assert not pending.resolve(BusReply({"a": 2}, "cid"))
        assert pending.done
        assert pending.wait(0) is first

    def test_wait_times_out(self):
        assert PendingReply("cid", "s").wait(0.01) is None


class TestLifecycle:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryMessageBus(), MessageBus)

    def test_request_before_start_fails(self):
        with pytest.raises(BusError):
            InMemoryMessageBus().request("s", {}, timeout=1)

    def test_context_manager(self):
        with InMemoryMessageBus() as bus:
            assert bus.running
            assert bus.loop_thread.is_alive()
        assert not bus.running

    def test_non_positive_timeout(self, memory_bus):
        with pytest.raises(ValueError):
            memory_bus.request("s", {}, timeout=0)


class TestRequestReply:
    def test_request_returns_immediately(self, memory_bus):
        handler = Recorder()
        pending = memory_bus.request("diego.staging.start", {"app_id": "a"}, timeout=30, handler=handler)
        memory_bus.flush()

        assert not pending.done
        assert handler.replies == []
        sent = memory_bus.sent_requests("diego.staging.start")
        assert sent[0].payload == {"app_id": "a"}
        assert sent[0].correlation_id == pending.correlation_id
        assert memory_bus.pending() == sent

    def test_reply_delivered_on_loop_thread(self, memory_bus):
        handler = Recorder()
        pending = memory_bus.request("s", {}, timeout=30, handler=handler)
        memory_bus.flush()
        memory_bus.reply(pending.correlation_id, {"detected_buildpack": "ruby"})
        memory_bus.flush()

        assert [r.payload for r in handler.replies] == [{"detected_buildpack": "ruby"}]
        assert handler.threads == [memory_bus.loop_thread.name]
        assert pending.wait(0).payload == {"detected_buildpack": "ruby"}
        assert memory_bus.outstanding == 0
        assert memory_bus.pending() == []

    def test_handler_fires_at_most_once(self, memory_bus):
        handler = Recorder()
        pending = memory_bus.request("s", {}, timeout=30, handler=handler)
        memory_bus.flush()
        memory_bus.reply(pending.correlation_id, {"n": 1})
        memory_bus.reply(pending.correlation_id, {"n": 2})
        memory_bus.flush()

        assert [r.payload for r in handler.replies] == [{"n": 1}]

    def test_responder_answers_immediately(self, memory_bus):
        memory_bus.respond_to("s", lambda payload: {"echo": payload["x"]})
        handler = Recorder()
        memory_bus.request("s", {"x": 1}, timeout=30, handler=handler)
        assert handler.called.wait(2)
        assert handler.replies[0].payload == {"echo": 1}

    def test_responder_returning_none_sends_nothing(self, memory_bus):
        memory_bus.respond_to("s", lambda payload: None)
        handler = Recorder()
        memory_bus.request("s", {}, timeout=30, handler=handler)
        memory_bus.flush()
        assert handler.replies == []
        assert memory_bus.outstanding == 1

    def test_unmatched_reply_dropped(self, memory_bus):
        with capture_logs() as logs:
            memory_bus.reply("unknown", {})
            memory_bus.flush()
        assert logs[-1]["event"] == "bus.unmatched_reply"

    def test_handler_error_is_logged(self, memory_bus):
        def broken(reply):
            raise RuntimeError("handler bug")

        memory_bus.respond_to("s", lambda payload: {})
        with capture_logs() as logs:
            pending = memory_bus.request("s", {}, timeout=30, handler=broken)
            memory_bus.flush()
        assert pending.done
        assert any(e["event"] == "bus.handler_error" for e in logs)


class TestTimeout:
    def test_timeout_sentinel(self, memory_bus):
        handler = Recorder()
        pending = memory_bus.request("s", {}, timeout=0.05, handler=handler)
        assert handler.called.wait(2)

        reply = handler.replies[0]
        assert reply.timed_out
        assert reply.payload == TIMEOUT_PAYLOAD
        assert reply.correlation_id == pending.correlation_id
        assert handler.threads == [memory_bus.loop_thread.name]

    def test_late_reply_after_timeout_dropped(self, memory_bus):
        handler = Recorder()
        pending = memory_bus.request("s", {}, timeout=0.05, handler=handler)
        assert handler.called.wait(2)

        memory_bus.reply(pending.correlation_id, {"detected_buildpack": "late"})
        memory_bus.flush()
        assert len(handler.replies) == 1
        assert handler.replies[0].timed_out

    def test_reply_cancels_timer(self, memory_bus):
        memory_bus.respond_to("s", lambda payload: {"ok": True})
        handler = Recorder()
        memory_bus.request("s", {}, timeout=0.05, handler=handler)
        time.sleep(0.15)
        memory_bus.flush()
        assert [r.timed_out for r in handler.replies] == [False]

    def test_stop_drops_pending_handlers(self):
        bus = InMemoryMessageBus()
        bus.start()
        handler = Recorder()
        bus.request("s", {}, timeout=0.1, handler=handler)
        bus.stop()
        time.sleep(0.2)
        assert handler.replies == []


class TestPublish:
    def test_publish_reaches_subscribers(self, memory_bus):
        received = []
        memory_bus.subscribe("droplet.staged", received.append)
        memory_bus.publish("droplet.staged", {"app": "a"})
        memory_bus.flush()
        assert received == [{"app": "a"}]
        assert memory_bus.published("droplet.staged") == [{"app": "a"}]

    def test_subscriber_error_does_not_stop_others(self, memory_bus):
        received = []

        def broken(payload):
            raise RuntimeError("bad")

        memory_bus.subscribe("s", broken)
        memory_bus.subscribe("s", received.append)
        memory_bus.publish("s", {"n": 1})
        memory_bus.flush()
        assert received == [{"n": 1}]

    def test_in_flight_sends_are_retained_until_done(self):
        class SlowSendBus(InMemoryMessageBus):
            async def _send(self, subject, payload):
                await asyncio.sleep(0.2)
                await super()._send(subject, payload)

        with SlowSendBus() as bus:
            bus.publish("s", {"n": 1})
            bus.flush()
            assert len(bus._send_tasks) == 1

            time.sleep(0.4)
            bus.flush()
            assert bus._send_tasks == set()
            assert bus.published("s") == [{"n": 1}]
