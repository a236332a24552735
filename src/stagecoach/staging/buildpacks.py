"""Buildpack selection for a staging request.

An app names its buildpack in one of three ways, modelled as a closed set
of variants:

    GitBasedBuildpack(url)   a URL the user supplied
    AdminBuildpack(key, ...) one of the buildpacks administered by the platform
    None                     nothing; let staging detect among all of them

Resolution, in this priority order:

1. git-based with an ``http...`` URL not ending in ``.git`` (a downloadable
   archive) -> exactly one ``custom`` descriptor carrying that URL;
2. admin -> exactly one descriptor for it;
3. anything else (no buildpack, or a git repository URL) -> one descriptor per
   *enabled* admin buildpack, in catalog order.

Admin descriptors carry a download URL from the blobstore URL generator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stagecoach.staging.ports import AdminBuildpackCatalog, BlobstoreUrlGenerator

CUSTOM_BUILDPACK_KEY = "custom"


@dataclass(frozen=True)
class GitBasedBuildpack:
    url: str

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class AdminBuildpack:
    key: str
    name: str
    enabled: bool = True
    position: int = 0

    def __str__(self) -> str:
        return self.name


Buildpack = GitBasedBuildpack | AdminBuildpack | None


@dataclass(frozen=True)
class BuildpackDescriptor:
    """One buildpack entry of a staging request."""

    key: str
    url: str

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "url": self.url}


def is_downloadable(url: str) -> bool:
    """True for an http(s) URL that is not a git repository."""
    return url.startswith("http") and not url.endswith(".git")


def _admin_entry(buildpack: AdminBuildpack, urls: BlobstoreUrlGenerator) -> BuildpackDescriptor:
    return BuildpackDescriptor(key=buildpack.key, url=urls.admin_buildpack_download_url(buildpack))


def _resolve_custom(buildpack: GitBasedBuildpack) -> list[BuildpackDescriptor]:
    return [BuildpackDescriptor(key=CUSTOM_BUILDPACK_KEY, url=buildpack.url)]


def _resolve_admin(buildpack: AdminBuildpack, urls: BlobstoreUrlGenerator) -> list[BuildpackDescriptor]:
    return [_admin_entry(buildpack, urls)]


def _resolve_detect(catalog: AdminBuildpackCatalog, urls: BlobstoreUrlGenerator) -> list[BuildpackDescriptor]:
    return [_admin_entry(bp, urls) for bp in catalog.list_admin_buildpacks() if bp.enabled]


def resolve_buildpacks(
    buildpack: Buildpack,
    catalog: AdminBuildpackCatalog,
    urls: BlobstoreUrlGenerator,
) -> list[BuildpackDescriptor]:
    """Buildpack descriptors to send for an app's buildpack choice."""
    match buildpack:
        case GitBasedBuildpack(url=url) if is_downloadable(url):
            return _resolve_custom(buildpack)
        case AdminBuildpack():
            return _resolve_admin(buildpack, urls)
        case _:
            return _resolve_detect(catalog, urls)


__all__ = [
    "CUSTOM_BUILDPACK_KEY",
    "GitBasedBuildpack",
    "AdminBuildpack",
    "Buildpack",
    "BuildpackDescriptor",
    "is_downloadable",
    "resolve_buildpacks",
]
