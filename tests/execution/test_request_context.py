"""Tests for request-id propagation."""

import threading
from contextvars import copy_context
from unittest.mock import patch

import pytest
import structlog

from stagecoach.core.errors import ContextRestoreError
from stagecoach.execution.request_context import get_request_id, request_context, run_with_context


class TestRunWithContext:
    """The previous ambient id is restored on every exit path."""

    def test_binds_value_during_unit(self):
        assert run_with_context("req-1", get_request_id) == "req-1"

    def test_restores_absent_value(self):
        run_with_context("req-1", lambda: None)
        assert get_request_id() is None

    def test_restores_previous_value(self):
        with request_context("outer"):
            run_with_context("inner", lambda: None)
            assert get_request_id() == "outer"

    def test_restores_on_failure_and_reraises_unchanged(self):
        error = RuntimeError("boom")

        def fail():
            raise error

        with request_context("outer"):
            with pytest.raises(RuntimeError) as exc_info:
                run_with_context("inner", fail)
            assert exc_info.value is error
            assert get_request_id() == "outer"

    def test_nested_contexts(self):
        seen = []

        def innermost():
            seen.append(get_request_id())

        def middle():
            seen.append(get_request_id())
            run_with_context("c", innermost)
            seen.append(get_request_id())

        run_with_context("b", middle)
        assert seen == ["b", "c", "b"]
        assert get_request_id() is None

    def test_none_is_a_valid_value(self):
        with request_context("outer"):
            assert run_with_context(None, get_request_id) is None
            assert get_request_id() == "outer"


class TestLogBinding:
    def test_request_id_bound_into_structlog(self):
        with request_context("req-9"):
            assert structlog.contextvars.get_contextvars()["request_id"] == "req-9"
        assert "request_id" not in structlog.contextvars.get_contextvars()


class TestIsolation:
    def test_threads_see_their_own_value(self):
        seen = {}

        def worker():
            seen["thread"] = get_request_id()

        with request_context("main"):
            thread = threading.Thread(target=worker)
            thread.start()
            thread.join()

        assert seen["thread"] is None


class TestRestoreFailure:
    def test_restore_failure_is_fatal(self):
        with patch.object(structlog.contextvars, "reset_contextvars", side_effect=ValueError("bad token")):
            with pytest.raises(ContextRestoreError) as exc_info:
                # Own context so the unrestored value cannot leak into other tests
                copy_context().run(run_with_context, "req-1", lambda: None)
        assert exc_info.value.fatal
        assert isinstance(exc_info.value.__cause__, ValueError)
        assert get_request_id() is None
