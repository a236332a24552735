"""Queued entry point for staging.

``StageAppJob`` is the leaf job an API request enqueues to stage an app.
The worker that performs it builds a :class:`StagerTask` from the staging
services configured for the process and dispatches it; the job finishes as
soon as the request is published.  The reply is handled later on the bus
thread, independently of the job queue.

Workers call :func:`configure_staging_services` once at startup.
"""

from __future__ import annotations

from concurrent.futures import Executor
from dataclasses import dataclass

from stagecoach.bus import MessageBus
from stagecoach.core.errors import StagingError
from stagecoach.core.logging import get_logger
from stagecoach.execution.registry import register_job
from stagecoach.staging.models import StagingApp
from stagecoach.staging.ports import (
    AdminBuildpackCatalog,
    AppRepository,
    BlobstoreUrlGenerator,
    DiagnosticEmitter,
)
from stagecoach.staging.task import StagerTask

log = get_logger(__name__)


@dataclass
class StagingServices:
    """Collaborators shared by every staging task of a process."""

    message_bus: MessageBus
    apps: AppRepository
    blobstore_url_generator: BlobstoreUrlGenerator
    buildpacks: AdminBuildpackCatalog
    staging_timeout: float
    diagnostics: DiagnosticEmitter | None = None
    callback_executor: Executor | None = None

    def stager_for(self, app: StagingApp) -> StagerTask:
        return StagerTask(
            self.staging_timeout,
            self.message_bus,
            app,
            self.blobstore_url_generator,
            apps=self.apps,
            buildpacks=self.buildpacks,
            diagnostics=self.diagnostics,
            callback_executor=self.callback_executor,
        )


_services: StagingServices | None = None


def configure_staging_services(services: StagingServices | None) -> None:
    """Install (or with None, remove) the process-wide staging services."""
    global _services
    _services = services


def get_staging_services() -> StagingServices:
    if _services is None:
        raise StagingError("Staging services are not configured; call configure_staging_services() first")
    return _services


@register_job("stage_app", description="Dispatch a staging request for an app")
@dataclass
class StageAppJob:
    app_guid: str

    job_name = "stage_app"

    def perform(self) -> None:
        services = get_staging_services()
        app = services.apps.find(self.app_guid)
        task = services.stager_for(app)
        task.stage()
        log.info("staging.dispatched", app_guid=self.app_guid, task_id=task.task_id)


__all__ = [
    "StagingServices",
    "StageAppJob",
    "configure_staging_services",
    "get_staging_services",
]
