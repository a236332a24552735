"""
Shared pytest fixtures for the stagecoach test suite.

Process-wide state (settings cache, job registry, default enqueuer, staging
services) is reset around every test so tests can run in any order.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

from stagecoach.bus.memory import InMemoryMessageBus
from stagecoach.core.settings import QueueBackendKind, StagecoachSettings, clear_settings_cache
from stagecoach.execution.enqueuer import set_default_enqueuer
from stagecoach.execution.registry import JobRegistry, reset_default_registry
from stagecoach.staging.jobs import configure_staging_services
from tests._support.jobs import RECORDED, make_registry


def _reset_globals() -> None:
    clear_settings_cache()
    reset_default_registry()
    set_default_enqueuer(None)
    configure_staging_services(None)
    RECORDED.clear()


@pytest.fixture(autouse=True)
def isolated_globals(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Reset process-wide singletons and keep ``.env`` files out of the way."""
    monkeypatch.setitem(StagecoachSettings.model_config, "env_file", None)
    _reset_globals()
    yield
    _reset_globals()


@pytest.fixture
def registry() -> JobRegistry:
    """Registry holding the test leaf jobs."""
    return make_registry()


@pytest.fixture
def settings() -> StagecoachSettings:
    return StagecoachSettings(
        queue_backend=QueueBackendKind.MEMORY,
        default_job_timeout_seconds=5,
        job_timeouts={"slow_job": 0.1},
    )


@pytest.fixture
def memory_bus() -> Generator[InMemoryMessageBus, None, None]:
    """A started in-memory bus, stopped after the test."""
    bus = InMemoryMessageBus()
    bus.start()
    yield bus
    bus.stop()
