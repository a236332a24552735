"""
Centralized settings for stagecoach.

One validated, cached settings object drives the queue backend, the message
bus transport, per-job timeouts and the staging timeout.  All fields can be
set through ``STAGECOACH_*`` environment variables or a ``.env`` file, e.g.
``STAGECOACH_QUEUE_BACKEND=celery`` or
``STAGECOACH_JOB_TIMEOUTS='{"blobstore_upload": 600}'``.

Tags:
    stagecoach, configuration, settings, pydantic

Doc-Types:
    api-reference
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class QueueBackendKind(str, Enum):
    """Supported job queue backends."""

    MEMORY = "memory"
    LOCAL = "local"
    CELERY = "celery"


class BusBackendKind(str, Enum):
    """Supported message bus transports."""

    MEMORY = "memory"
    REDIS = "redis"


class StagecoachSettings(BaseSettings):
    """stagecoach configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STAGECOACH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ── Component backends ───────────────────────────────────────
    queue_backend: QueueBackendKind = Field(default=QueueBackendKind.LOCAL)
    bus_backend: BusBackendKind = Field(default=BusBackendKind.MEMORY)

    # ── Local queue identity ─────────────────────────────────────
    queue_name: str = Field(default="api", description="Logical name of this process' local queue")
    queue_index: int = Field(default=0, description="Index of this process among its peers")
    default_queue: str = Field(default="cc-generic")

    # ── Celery ───────────────────────────────────────────────────
    celery_broker_url: str = Field(default="redis://localhost:6379/0")
    celery_result_backend: str = Field(default="redis://localhost:6379/1")

    # ── Local worker pool ────────────────────────────────────────
    local_workers: int = Field(default=4)

    # ── Job execution ────────────────────────────────────────────
    default_job_timeout_seconds: float = Field(default=4 * 60 * 60)
    job_timeouts: dict[str, float] = Field(
        default_factory=dict,
        description="Per job_name timeout overrides in seconds",
    )
    job_max_retries: int = Field(default=3)
    job_retry_backoff_seconds: int = Field(default=60)

    # ── Message bus ──────────────────────────────────────────────
    bus_redis_url: str = Field(default="redis://localhost:6379/2")
    bus_channel_prefix: str = Field(default="stagecoach:bus")

    # ── Staging ──────────────────────────────────────────────────
    staging_timeout_seconds: float = Field(default=900)
    callback_workers: int = Field(default=4)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")

    @field_validator("default_job_timeout_seconds", "staging_timeout_seconds")
    @classmethod
    def _positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError(f"timeout must be positive, got {value}")
        return value

    def timeout_for(self, job_name: str) -> float:
        """Maximum run time for a job, falling back to the global default."""
        return self.job_timeouts.get(job_name, self.default_job_timeout_seconds)


_settings: StagecoachSettings | None = None


def get_settings(*, _force_reload: bool = False) -> StagecoachSettings:
    """Load, validate, and cache the process settings."""
    global _settings
    if _settings is None or _force_reload:
        _settings = StagecoachSettings()
    return _settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    global _settings
    _settings = None


__all__ = [
    "QueueBackendKind",
    "BusBackendKind",
    "StagecoachSettings",
    "get_settings",
    "clear_settings_cache",
]
