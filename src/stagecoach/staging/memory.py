"""In-memory implementations of the staging collaborators.

For tests and single-process development.  ``InMemoryAppRepository`` hands
out copies, so a caller holding an old snapshot never sees later writes;
only ``find`` returns the live state.
"""

from __future__ import annotations

import copy
import threading
from urllib.parse import quote

from stagecoach.staging.buildpacks import AdminBuildpack
from stagecoach.staging.models import StagingApp


class InMemoryAppRepository:
    def __init__(self, apps: list[StagingApp] | None = None):
        self._apps: dict[str, StagingApp] = {}
        self._lock = threading.Lock()
        for app in apps or []:
            self.add(app)

    def add(self, app: StagingApp) -> StagingApp:
        with self._lock:
            self._apps[app.guid] = copy.deepcopy(app)
        return self.find(app.guid)

    def find(self, guid: str) -> StagingApp:
        with self._lock:
            try:
                return copy.deepcopy(self._apps[guid])
            except KeyError:
                raise LookupError(f"app {guid} not found") from None

    def delete(self, guid: str) -> None:
        with self._lock:
            self._apps.pop(guid, None)

    def _live(self, guid: str) -> StagingApp:
        try:
            return self._apps[guid]
        except KeyError:
            raise LookupError(f"app {guid} not found") from None

    def set_staging_task_id(self, guid: str, task_id: str) -> None:
        with self._lock:
            app = self._live(guid)
            app.staging_task_id = task_id
            app.staging_generation += 1

    def record_detected_buildpack(self, guid: str, detected_buildpack: str | None) -> None:
        with self._lock:
            app = self._live(guid)
            app.detected_buildpack = detected_buildpack
            app.package_state = "STAGED"

    def mark_failed_to_stage(self, guid: str) -> None:
        with self._lock:
            self._live(guid).package_state = "FAILED"


class StaticBuildpackCatalog:
    def __init__(self, buildpacks: list[AdminBuildpack] | None = None):
        self.buildpacks = list(buildpacks or [])

    def list_admin_buildpacks(self) -> list[AdminBuildpack]:
        return sorted(self.buildpacks, key=lambda bp: bp.position)


class StaticBlobstoreUrlGenerator:
    """Builds download URLs under a fixed base URL."""

    def __init__(self, base_url: str = "http://blobstore.internal"):
        self.base_url = base_url.rstrip("/")

    def app_package_download_url(self, app: StagingApp) -> str:
        return f"{self.base_url}/packages/{quote(app.guid)}"

    def buildpack_cache_download_url(self, app: StagingApp) -> str:
        return f"{self.base_url}/buildpack_cache/{quote(app.guid)}"

    def admin_buildpack_download_url(self, buildpack: AdminBuildpack) -> str:
        return f"{self.base_url}/buildpacks/{quote(buildpack.key)}"


__all__ = ["InMemoryAppRepository", "StaticBuildpackCatalog", "StaticBlobstoreUrlGenerator"]
