"""Tests for the queued staging entry point."""

import pytest

from stagecoach.core.errors import StagingError
from stagecoach.execution.backends.memory import MemoryBackend
from stagecoach.execution.enqueuer import Enqueuer
from stagecoach.execution.registry import JobRegistry
from stagecoach.execution.request_context import request_context
from stagecoach.staging.jobs import StageAppJob, StagingServices, configure_staging_services, get_staging_services
from stagecoach.staging.task import STAGING_START_SUBJECT


@pytest.fixture
def services(memory_bus, apps, blobstore, catalog, diagnostics, callback_executor):
    services = StagingServices(
        message_bus=memory_bus,
        apps=apps,
        blobstore_url_generator=blobstore,
        buildpacks=catalog,
        staging_timeout=30,
        diagnostics=diagnostics,
        callback_executor=callback_executor,
    )
    configure_staging_services(services)
    return services


class TestStageAppJob:
    def test_unconfigured(self):
        with pytest.raises(StagingError):
            get_staging_services()

    def test_perform_dispatches_staging(self, services, memory_bus, apps):
        StageAppJob("app-guid").perform()
        memory_bus.flush()

        sent = memory_bus.sent_requests(STAGING_START_SUBJECT)
        assert len(sent) == 1
        assert sent[0].payload["task_id"] == apps.find("app-guid").staging_task_id

    def test_enqueued_then_performed_by_worker(self, services, memory_bus, settings):
        registry = JobRegistry()
        registry.register("stage_app", StageAppJob)
        backend = MemoryBackend(registry)

        with request_context("req-1"):
            handle = Enqueuer(backend, settings).enqueue(StageAppJob("app-guid"))
        assert handle.job_name == "stage_app"
        assert memory_bus.sent_requests() == []

        ran = backend.run_pending()
        memory_bus.flush()
        assert ran[0].status == "completed"
        assert len(memory_bus.sent_requests(STAGING_START_SUBJECT)) == 1

    def test_unknown_app(self, services):
        with pytest.raises(LookupError):
            StageAppJob("missing").perform()
