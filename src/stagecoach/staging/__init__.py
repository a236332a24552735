"""Remote staging dispatch.

``StagerTask`` publishes a staging request for one app and reconciles the
eventual reply against the app's current staging token; see
:mod:`stagecoach.staging.task` for the state machine.
"""

from stagecoach.staging.buildpacks import (
    AdminBuildpack,
    Buildpack,
    BuildpackDescriptor,
    GitBasedBuildpack,
    resolve_buildpacks,
)
from stagecoach.staging.environment import staging_environment, system_environment
from stagecoach.staging.jobs import StageAppJob, StagingServices, configure_staging_services
from stagecoach.staging.models import (
    EnvironmentVariable,
    StagingApp,
    StagingCompletion,
    StagingRequest,
    StagingResponse,
)
from stagecoach.staging.task import STAGING_START_SUBJECT, StagerTask, StagingState

__all__ = [
    "AdminBuildpack",
    "Buildpack",
    "BuildpackDescriptor",
    "GitBasedBuildpack",
    "resolve_buildpacks",
    "staging_environment",
    "system_environment",
    "StageAppJob",
    "StagingServices",
    "configure_staging_services",
    "EnvironmentVariable",
    "StagingApp",
    "StagingCompletion",
    "StagingRequest",
    "StagingResponse",
    "STAGING_START_SUBJECT",
    "StagerTask",
    "StagingState",
]
