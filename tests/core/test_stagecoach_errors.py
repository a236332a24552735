"""Tests for the stagecoach error hierarchy and classification helpers."""

import pytest

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
from stagecoach.execution.timeout import TimeoutExpired


class TestStagecoachError:
    """Tests for the base error."""

    def test_defaults_from_subclass(self):
        err = SubmissionError("queue down")
        assert err.category is ErrorCategory.QUEUE
        assert err.retryable is True
        assert err.fatal is False

    def test_instance_overrides(self):
        err = StagingError("x", retryable=True, fatal=True, category=ErrorCategory.CONFIG)
        assert err.retryable is True
        assert err.fatal is True
        assert err.category is ErrorCategory.CONFIG

    def test_cause_is_chained(self):
        cause = ConnectionError("refused")
        err = BusError("publish failed", cause=cause)
        assert err.__cause__ is cause
        assert err.cause is cause

    def test_with_context_is_fluent(self):
        err = SubmissionError("failed").with_context(queue="cc-api-0")
        assert err.context == {"queue": "cc-api-0"}

    def test_to_dict(self):
        err = JobDeserializationError("bad payload", context={"name": "x"}, cause=KeyError("type"))
        data = err.to_dict()
        assert data["error_type"] == "JobDeserializationError"
        assert data["category"] == "VALIDATION"
        assert data["context"] == {"name": "x"}
        assert "KeyError" in data["cause"]

    def test_repr(self):
        assert repr(StagingError("oops")) == "StagingError('oops', category=STAGING)"


class TestClassification:
    """Tests for is_retryable / is_fatal / categorize_error / failure_kind."""

    def test_context_restore_error_is_fatal(self):
        assert is_fatal(ContextRestoreError("broken"))

    def test_plain_exceptions_are_not_fatal(self):
        assert not is_fatal(RuntimeError("x"))

    def test_base_exceptions_are_fatal(self):
        assert is_fatal(KeyboardInterrupt())

    @pytest.mark.parametrize(
        "error, retryable",
        [
            (ConnectionError("x"), True),
            (TimeoutError("x"), True),
            (ValueError("x"), False),
            (StagingError("x"), False),
        ],
    )
    def test_is_retryable(self, error, retryable):
        assert is_retryable(error) is retryable

    @pytest.mark.parametrize(
        "error, category",
        [
            (TimeoutExpired(1.0), ErrorCategory.TIMEOUT),
            (ConnectionError("x"), ErrorCategory.NETWORK),
            (ValueError("x"), ErrorCategory.VALIDATION),
            (KeyError("x"), ErrorCategory.CONFIG),
            (RuntimeError("x"), ErrorCategory.UNKNOWN),
            (BusError("x"), ErrorCategory.TRANSPORT),
        ],
    )
    def test_categorize_error(self, error, category):
        assert categorize_error(error) is category

    def test_failure_kind_timeout(self):
        assert failure_kind(TimeoutExpired(5.0, operation="upload")) == "timeout"

    def test_failure_kind_category(self):
        assert failure_kind(SubmissionError("x")) == "queue"
        assert failure_kind(RuntimeError("x")) == "unknown"

    def test_stagecoach_error_is_exception(self):
        assert issubclass(StagecoachError, Exception)
