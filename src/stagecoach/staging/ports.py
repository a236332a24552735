"""Collaborators of the staging task, specified at their boundary.

The staging task reads and writes a handful of persisted app fields, asks an
artifact location service for download URLs and reports failures to the
app's log stream.  Everything behind these protocols is owned elsewhere.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from stagecoach.core.logging import get_logger
from stagecoach.staging.buildpacks import AdminBuildpack
from stagecoach.staging.models import StagingApp


@runtime_checkable
class AppRepository(Protocol):
    """Persisted app fields consumed and produced by staging."""

    def find(self, guid: str) -> StagingApp:
        """Fresh read of the app.  Never served from a cache.

        Raises:
            LookupError: If the app no longer exists
        """
        ...

    def set_staging_task_id(self, guid: str, task_id: str) -> None:
        """Make ``task_id`` the app's current staging token."""
        ...

    def record_detected_buildpack(self, guid: str, detected_buildpack: str | None) -> None: ...

    def mark_failed_to_stage(self, guid: str) -> None: ...


@runtime_checkable
class BlobstoreUrlGenerator(Protocol):
    """Artifact location service: pure functions from identity to URI."""

    def app_package_download_url(self, app: StagingApp) -> str: ...

    def buildpack_cache_download_url(self, app: StagingApp) -> str: ...

    def admin_buildpack_download_url(self, buildpack: AdminBuildpack) -> str: ...


@runtime_checkable
class AdminBuildpackCatalog(Protocol):
    def list_admin_buildpacks(self) -> list[AdminBuildpack]:
        """All admin buildpacks, ordered by position."""
        ...


@runtime_checkable
class DiagnosticEmitter(Protocol):
    """Where user-visible staging failures are reported."""

    def emit_error(self, app_guid: str, message: str) -> None: ...


class LoggingDiagnosticEmitter:
    """Reports diagnostics as ``app.diagnostic`` error log events."""

    def __init__(self) -> None:
        self._log = get_logger("stagecoach.diagnostics")

    def emit_error(self, app_guid: str, message: str) -> None:
        self._log.error("app.diagnostic", app_guid=app_guid, message=message)


__all__ = [
    "AppRepository",
    "BlobstoreUrlGenerator",
    "AdminBuildpackCatalog",
    "DiagnosticEmitter",
    "LoggingDiagnosticEmitter",
]
