"""Fixtures for staging tests: an app, its collaborators and a running bus."""

from __future__ import annotations

from collections.abc import Generator
from concurrent.futures import ThreadPoolExecutor

import pytest

from stagecoach.staging.buildpacks import AdminBuildpack
from stagecoach.staging.memory import (
    InMemoryAppRepository,
    StaticBlobstoreUrlGenerator,
    StaticBuildpackCatalog,
)
from stagecoach.staging.models import StagingApp


class RecordingDiagnostics:
    def __init__(self):
        self.errors: list[tuple[str, str]] = []

    def emit_error(self, app_guid: str, message: str) -> None:
        self.errors.append((app_guid, message))


@pytest.fixture
def app() -> StagingApp:
    return StagingApp(
        guid="app-guid",
        name="dora",
        memory=256,
        disk_quota=512,
        file_descriptors=1024,
        stack_name="cflinuxfs4",
        environment_json={"RAILS_ENV": "production"},
        vcap_application={"application_id": "app-guid"},
        vcap_services={},
    )


@pytest.fixture
def apps(app) -> InMemoryAppRepository:
    return InMemoryAppRepository([app])


@pytest.fixture
def catalog() -> StaticBuildpackCatalog:
    return StaticBuildpackCatalog(
        [
            AdminBuildpack("java", "java_buildpack", position=2),
            AdminBuildpack("ruby", "ruby_buildpack", position=1),
            AdminBuildpack("php", "php_buildpack", enabled=False, position=3),
        ]
    )


@pytest.fixture
def blobstore() -> StaticBlobstoreUrlGenerator:
    return StaticBlobstoreUrlGenerator("http://blobstore.test")


@pytest.fixture
def diagnostics() -> RecordingDiagnostics:
    return RecordingDiagnostics()


@pytest.fixture
def callback_executor() -> Generator[ThreadPoolExecutor, None, None]:
    executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="staging-cb")
    yield executor
    executor.shutdown(wait=True)
