"""Staging data: the app being staged, the request sent, the reply received.

``StagingApp`` is a snapshot of the persisted app as the staging task needs
it; the app model itself, its validation and its persistence live elsewhere
and are reached through :class:`~stagecoach.staging.ports.AppRepository`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from stagecoach.staging.buildpacks import Buildpack, BuildpackDescriptor

STAGING_TIMED_OUT = "Request to stage timed out"


@dataclass
class StagingApp:
    """The target of a staging task.

    Attributes:
        guid: App identifier
        memory: Memory limit in MB
        disk_quota: Disk limit in MB
        file_descriptors: File descriptor limit
        stack_name: Root filesystem stack
        buildpack: The app's buildpack choice
        environment_json: User-defined environment variables
        vcap_application: Derived application metadata (VCAP_APPLICATION)
        vcap_services: Bound service credentials (VCAP_SERVICES)
        database_uri: URI of a bound relational database, if any
        staging_task_id: Token of the current staging task
        staging_generation: Bumped each time the token is replaced
        detected_buildpack: Buildpack detected by the last successful staging
        package_state: ``PENDING``, ``STAGED`` or ``FAILED``
    """

    guid: str
    name: str = ""
    memory: int = 1024
    disk_quota: int = 1024
    file_descriptors: int = 16384
    stack_name: str = "lucid64"
    buildpack: Buildpack = None
    environment_json: dict[str, str] = field(default_factory=dict)
    vcap_application: dict[str, Any] = field(default_factory=dict)
    vcap_services: dict[str, Any] = field(default_factory=dict)
    database_uri: str | None = None
    staging_task_id: str | None = None
    staging_generation: int = 0
    detected_buildpack: str | None = None
    package_state: str = "PENDING"

    @property
    def failed_to_stage(self) -> bool:
        return self.package_state == "FAILED"


@dataclass(frozen=True)
class EnvironmentVariable:
    key: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"key": self.key, "value": self.value}


@dataclass(frozen=True)
class StagingRequest:
    """Payload published on ``diego.staging.start``."""

    app_id: str
    task_id: str
    memory_mb: int
    disk_mb: int
    file_descriptors: int
    environment: list[EnvironmentVariable]
    stack: str
    build_artifacts_cache_download_uri: str
    app_bits_download_uri: str
    buildpacks: list[BuildpackDescriptor]

    def to_dict(self) -> dict[str, Any]:
        return {
            "app_id": self.app_id,
            "task_id": self.task_id,
            "memory_mb": self.memory_mb,
            "disk_mb": self.disk_mb,
            "file_descriptors": self.file_descriptors,
            "environment": [env.to_dict() for env in self.environment],
            "stack": self.stack,
            "build_artifacts_cache_download_uri": self.build_artifacts_cache_download_uri,
            "app_bits_download_uri": self.app_bits_download_uri,
            "buildpacks": [bp.to_dict() for bp in self.buildpacks],
        }


@dataclass(frozen=True)
class StagingResponse:
    """Reply to a staging request (or the bus's synthetic timeout)."""

    detected_buildpack: str | None = None
    error: str | None = None
    timeout: bool = False
    log: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> StagingResponse:
        # Only a missing, null or false error means success; "" is still an error
        error = payload.get("error")
        return cls(
            detected_buildpack=payload.get("detected_buildpack"),
            error=None if error is None or error is False else str(error),
            timeout=bool(payload.get("timeout")),
            log=payload.get("task_log"),
        )

    @property
    def failed(self) -> bool:
        return self.error is not None or self.timeout

    @property
    def failure_message(self) -> str | None:
        """Error text for a failed response; the error wins over a timeout."""
        if self.error is not None:
            return self.error
        if self.timeout:
            return STAGING_TIMED_OUT
        return None


@dataclass(frozen=True)
class StagingCompletion:
    """Handed to the completion callback after a successful staging."""

    app_guid: str
    detected_buildpack: str | None
    started_instances: int = 0


__all__ = [
    "STAGING_TIMED_OUT",
    "StagingApp",
    "EnvironmentVariable",
    "StagingRequest",
    "StagingResponse",
    "StagingCompletion",
]
