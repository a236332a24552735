"""Tests for building backends and buses from settings."""

from unittest.mock import patch

from stagecoach.bus.memory import InMemoryMessageBus
from stagecoach.bus.redis import RedisMessageBus
from stagecoach.core.factory import create_message_bus, create_queue_backend
from stagecoach.core.settings import BusBackendKind, QueueBackendKind, StagecoachSettings
from stagecoach.execution.backends.celery import CeleryBackend
from stagecoach.execution.backends.local import LocalBackend
from stagecoach.execution.backends.memory import MemoryBackend


class TestCreateQueueBackend:
    def test_memory(self):
        backend = create_queue_backend(StagecoachSettings(queue_backend=QueueBackendKind.MEMORY))
        assert isinstance(backend, MemoryBackend)

    def test_local(self):
        backend = create_queue_backend(StagecoachSettings(queue_backend=QueueBackendKind.LOCAL, local_workers=2))
        try:
            assert isinstance(backend, LocalBackend)
            assert backend.pool._max_workers == 2
        finally:
            backend.shutdown()

    def test_celery_uses_retry_policy_from_settings(self):
        settings = StagecoachSettings(
            queue_backend=QueueBackendKind.CELERY,
            job_max_retries=7,
            job_retry_backoff_seconds=5,
        )
        with patch("stagecoach.execution.tasks.make_celery") as make_celery:
            backend = create_queue_backend(settings)
        assert isinstance(backend, CeleryBackend)
        make_celery.assert_called_once_with(settings)
        assert backend.celery_app is make_celery.return_value
        assert backend.max_retries == 7
        assert backend.retry_backoff_seconds == 5


class TestCreateMessageBus:
    def test_memory(self):
        bus = create_message_bus(StagecoachSettings(bus_backend=BusBackendKind.MEMORY))
        assert isinstance(bus, InMemoryMessageBus)
        assert not bus.running

    def test_redis(self):
        settings = StagecoachSettings(
            bus_backend=BusBackendKind.REDIS,
            bus_redis_url="redis://cache:6379/3",
            bus_channel_prefix="cc",
        )
        bus = create_message_bus(settings)
        assert isinstance(bus, RedisMessageBus)
        assert bus.channel("diego.staging.start") == "cc:diego.staging.start"
        assert bus.inbox.startswith("cc:_INBOX.")
