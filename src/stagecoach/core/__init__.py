"""Core infrastructure shared by the execution pipeline and staging: errors, logging, settings."""

from stagecoach.core.errors import (
    BusError,
    ContextRestoreError,
    ErrorCategory,
    JobDeserializationError,
    StagecoachError,
    StagingError,
    SubmissionError,
    categorize_error,
    failure_kind,
    is_fatal,
    is_retryable,
)
from stagecoach.core.logging import configure_logging, get_logger
from stagecoach.core.settings import StagecoachSettings, clear_settings_cache, get_settings

__all__ = [
    "BusError",
    "ContextRestoreError",
    "ErrorCategory",
    "JobDeserializationError",
    "StagecoachError",
    "StagingError",
    "SubmissionError",
    "categorize_error",
    "failure_kind",
    "is_fatal",
    "is_retryable",
    "configure_logging",
    "get_logger",
    "StagecoachSettings",
    "clear_settings_cache",
    "get_settings",
]
