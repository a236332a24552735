"""Tests for crash containment."""

import pytest
from structlog.testing import capture_logs

from stagecoach.core.errors import ContextRestoreError, SubmissionError
from stagecoach.execution.containment import perform_contained
from stagecoach.execution.timeout import TimeoutExpired


def _raiser(error):
    def unit():
        raise error

    return unit


class TestPerformContained:
    def test_success_logs_nothing(self):
        calls = []
        with capture_logs() as logs:
            perform_contained(lambda: calls.append(1), job_name="ok")
        assert calls == [1]
        assert logs == []

    def test_failure_is_logged_and_reraised_unchanged(self):
        error = RuntimeError("boom")
        with capture_logs() as logs:
            with pytest.raises(RuntimeError) as exc_info:
                perform_contained(_raiser(error), job_name="blobstore_upload", request_id="req-1")

        assert exc_info.value is error
        failed = [e for e in logs if e["event"] == "job.failed"]
        assert len(failed) == 1
        assert failed[0]["job"] == "blobstore_upload"
        assert failed[0]["request_id"] == "req-1"
        assert failed[0]["failure_kind"] == "unknown"
        assert failed[0]["error_type"] == "RuntimeError"
        assert failed[0]["error"] == "boom"
        assert failed[0]["log_level"] == "error"

    def test_timeout_failure_kind(self):
        with capture_logs() as logs:
            with pytest.raises(TimeoutExpired):
                perform_contained(_raiser(TimeoutExpired(1.0, operation="x")), job_name="x")
        assert logs[0]["failure_kind"] == "timeout"

    def test_stagecoach_error_category(self):
        with capture_logs() as logs:
            with pytest.raises(SubmissionError):
                perform_contained(_raiser(SubmissionError("queue down")), job_name="x")
        assert logs[0]["failure_kind"] == "queue"
        assert logs[0]["category"] == "QUEUE"


class TestBestEffort:
    def test_non_fatal_failure_absorbed(self):
        with capture_logs() as logs:
            perform_contained(_raiser(ValueError("bad record")), job_name="sweep", best_effort=True)

        events = [e["event"] for e in logs]
        assert events == ["job.failed", "job.failure_absorbed"]
        assert logs[1]["failure_kind"] == "validation"

    def test_fatal_failure_always_propagates(self):
        with pytest.raises(ContextRestoreError):
            perform_contained(_raiser(ContextRestoreError("broken")), job_name="sweep", best_effort=True)

    def test_base_exceptions_are_not_caught(self):
        with capture_logs() as logs:
            with pytest.raises(KeyboardInterrupt):
                perform_contained(_raiser(KeyboardInterrupt()), job_name="sweep", best_effort=True)
        assert logs == []
