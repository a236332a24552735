"""Tests for the memory and local queue backends."""

import threading
from datetime import UTC, datetime, timedelta

import pytest

from stagecoach.execution.backends import LocalBackend, MemoryBackend, QueueBackend
from stagecoach.execution.jobs import job_to_payload, wrap_job
from tests._support.jobs import RECORDED, FailingJob, RecordingJob


def _payload(job, request_id=None):
    return job_to_payload(wrap_job(job, request_id=request_id, timeout_seconds=5))


class TestMemoryBackend:
    def test_satisfies_protocol(self):
        assert isinstance(MemoryBackend(), QueueBackend)

    def test_records_until_run(self, registry):
        backend = MemoryBackend(registry)
        ref = backend.submit(_payload(RecordingJob("a")), "cc-api-0")

        assert ref.startswith("mem-")
        assert [s.queue for s in backend.pending()] == ["cc-api-0"]
        assert RECORDED == []

        ran = backend.run_pending()
        assert [s.status for s in ran] == ["completed"]
        assert RECORDED[0]["label"] == "a"
        assert backend.pending() == []

    def test_runs_in_submission_order(self, registry):
        backend = MemoryBackend(registry)
        for label in ["a", "b", "c"]:
            backend.submit(_payload(RecordingJob(label)), "q")
        backend.run_pending()
        assert [r["label"] for r in RECORDED] == ["a", "b", "c"]

    def test_unavailable(self):
        backend = MemoryBackend()
        backend.available = False
        with pytest.raises(ConnectionError):
            backend.submit({}, "q")

    def test_clear(self):
        backend = MemoryBackend()
        backend.submit({}, "q")
        backend.clear()
        assert backend.submissions == []


class TestLocalBackend:
    def test_satisfies_protocol(self):
        with LocalBackend(max_workers=1) as backend:
            assert isinstance(backend, QueueBackend)

    def test_runs_on_worker_thread(self, registry):
        with LocalBackend(max_workers=2, registry=registry) as backend:
            ref = backend.submit(_payload(RecordingJob("a"), "req-1"), "cc-api-0")
            assert backend.wait(ref, timeout=5) == "completed"

        assert RECORDED[0]["request_id"] == "req-1"
        assert RECORDED[0]["thread"] != threading.current_thread().name

    def test_failed_status(self, registry):
        with LocalBackend(max_workers=1, registry=registry) as backend:
            ref = backend.submit(_payload(FailingJob()), "q")
            assert backend.wait(ref, timeout=5) == "failed"

    def test_unknown_ref(self):
        with LocalBackend(max_workers=1) as backend:
            assert backend.get_status("local-nope") is None

    def test_run_at_delays_start(self, registry):
        with LocalBackend(max_workers=1, registry=registry) as backend:
            run_at = datetime.now(UTC) + timedelta(seconds=0.2)
            ref = backend.submit(_payload(RecordingJob("later")), "q", run_at=run_at)
            assert backend.get_status(ref) == "scheduled"
            assert backend.wait(ref, timeout=5) == "completed"
        assert RECORDED[0]["label"] == "later"

    def test_submit_after_shutdown_raises(self):
        backend = LocalBackend(max_workers=1)
        backend.shutdown()
        with pytest.raises(RuntimeError):
            backend.submit({}, "q")
