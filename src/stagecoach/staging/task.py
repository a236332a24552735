"""Staging dispatch: one remote staging attempt for one app.

A ``StagerTask`` publishes a staging request on the message bus and
reconciles the eventual reply against the app's *current* state.

State machine::

    CREATED ──stage()──▶ DISPATCHED ──reply──┬─▶ SUCCEEDED   record detected buildpack,
                                             │               defer completion callback
                                             ├─▶ FAILED      mark failed, emit diagnostic
                                             ├─▶ TIMED_OUT   same as FAILED, "timed out" text
                                             └─▶ SUPERSEDED  app moved on: discard reply

Supersession:
    ``stage()`` first makes this task's token the app's current staging
    token.  Starting another staging of the same app replaces it.  Before
    acting on any reply, success or failure, the handler re-reads the app
    (a fresh read, never a cached snapshot) and drops the reply unless the
    token is still this task's.  Out-of-order, duplicate and late replies are
    therefore harmless, and nothing needs to be torn down for a superseded
    task: the bus forgets its handler after one invocation.

Threading:
    ``stage()`` returns as soon as the request is published.  The reply
    handler runs on the bus's event-loop thread and only does cheap
    bookkeeping; the caller's completion callback may be expensive, so it is
    submitted to a thread pool instead of running on the bus thread.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from enum import Enum
from functools import partial

from stagecoach.bus import BusReply, MessageBus, PendingReply
from stagecoach.core.errors import BusError, StagingError
from stagecoach.core.logging import get_logger
from stagecoach.core.settings import get_settings
from stagecoach.execution.containment import perform_contained
from stagecoach.execution.request_context import get_request_id, run_with_context
from stagecoach.staging.buildpacks import resolve_buildpacks
from stagecoach.staging.environment import staging_environment
from stagecoach.staging.models import StagingApp, StagingCompletion, StagingRequest, StagingResponse
from stagecoach.staging.ports import (
    AdminBuildpackCatalog,
    AppRepository,
    BlobstoreUrlGenerator,
    DiagnosticEmitter,
    LoggingDiagnosticEmitter,
)

log = get_logger("stagecoach.app_stager")

STAGING_START_SUBJECT = "diego.staging.start"

CompletionCallback = Callable[[StagingCompletion], object]


class StagingState(str, Enum):
    CREATED = "created"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    SUPERSEDED = "superseded"


_callback_executor: ThreadPoolExecutor | None = None


def get_callback_executor() -> ThreadPoolExecutor:
    """Shared pool running completion callbacks off the bus thread."""
    global _callback_executor
    if _callback_executor is None:
        _callback_executor = ThreadPoolExecutor(
            max_workers=get_settings().callback_workers,
            thread_name_prefix="stagecoach-staging-callback",
        )
    return _callback_executor


class StagerTask:
    """One staging attempt for one app."""

    def __init__(
        self,
        staging_timeout: float,
        message_bus: MessageBus,
        app: StagingApp,
        blobstore_url_generator: BlobstoreUrlGenerator,
        *,
        apps: AppRepository,
        buildpacks: AdminBuildpackCatalog,
        diagnostics: DiagnosticEmitter | None = None,
        callback_executor: Executor | None = None,
    ):
        self.staging_timeout = staging_timeout
        self.message_bus = message_bus
        self.app = app
        self.blobstore_url_generator = blobstore_url_generator
        self.apps = apps
        self.buildpacks = buildpacks
        self.diagnostics = diagnostics or LoggingDiagnosticEmitter()
        self.callback_executor = callback_executor or get_callback_executor()

        self.task_id = uuid.uuid4().hex
        self.state = StagingState.CREATED
        self._request_id: str | None = None

    def stage(self, completion_callback: CompletionCallback | None = None) -> PendingReply:
        """Supersede any earlier staging of the app and publish the request.

        Returns immediately; the outcome is applied when the reply (or the
        bus timeout) arrives.

        Raises:
            StagingError: If this task was already dispatched
            BusError: If the message bus is not running.  The task stays
                CREATED and may be staged again, but its token has already
                superseded any earlier staging of the app.
        """
        if self.state is not StagingState.CREATED:
            raise StagingError(
                f"staging task {self.task_id} already {self.state.value}",
                context={"app_guid": self.app.guid, "task_id": self.task_id},
            )

        self._request_id = get_request_id()
        self.apps.set_staging_task_id(self.app.guid, self.task_id)
        log.info("staging.begin", app_guid=self.app.guid, task_id=self.task_id)

        request = self.staging_request()
        # Set before the request: the reply handler may run before request() returns
        self.state = StagingState.DISPATCHED
        try:
            return self.message_bus.request(
                STAGING_START_SUBJECT,
                request.to_dict(),
                timeout=self.staging_timeout,
                handler=partial(self._handle_reply, completion_callback),
            )
        except BusError:
            self.state = StagingState.CREATED
            raise

    def staging_request(self) -> StagingRequest:
        app = self.app
        urls = self.blobstore_url_generator
        return StagingRequest(
            app_id=app.guid,
            task_id=self.task_id,
            memory_mb=app.memory,
            disk_mb=app.disk_quota,
            file_descriptors=app.file_descriptors,
            environment=staging_environment(app),
            stack=app.stack_name,
            build_artifacts_cache_download_uri=urls.buildpack_cache_download_url(app),
            app_bits_download_uri=urls.app_package_download_url(app),
            buildpacks=resolve_buildpacks(app.buildpack, self.buildpacks, urls),
        )

    # ── reply handling (bus thread) ──────────────────────────────

    def _is_current_task(self) -> bool:
        try:
            current = self.apps.find(self.app.guid)
        except LookupError:
            return False
        return current.staging_task_id == self.task_id

    def _handle_reply(self, completion_callback: CompletionCallback | None, reply: BusReply) -> None:
        log.info(
            "staging.response",
            app_guid=self.app.guid,
            task_id=self.task_id,
            timed_out=reply.timed_out,
            response=reply.payload,
        )

        if not self._is_current_task():
            self.state = StagingState.SUPERSEDED
            log.debug("staging.stale_response", app_guid=self.app.guid, task_id=self.task_id)
            return

        response = StagingResponse.from_payload(reply.payload)

        if response.failed:
            self.state = StagingState.FAILED if response.error is not None else StagingState.TIMED_OUT
            self.apps.mark_failed_to_stage(self.app.guid)
            self.diagnostics.emit_error(
                self.app.guid,
                f"Failed to stage application:\n{response.failure_message}\n{response.log or ''}",
            )
            return

        self.apps.record_detected_buildpack(self.app.guid, response.detected_buildpack)
        self.state = StagingState.SUCCEEDED

        if completion_callback is not None:
            completion = StagingCompletion(
                app_guid=self.app.guid,
                detected_buildpack=response.detected_buildpack,
                started_instances=0,
            )
            self.callback_executor.submit(self._run_callback, completion_callback, completion)

    def _run_callback(self, completion_callback: CompletionCallback, completion: StagingCompletion) -> None:
        perform_contained(
            lambda: run_with_context(self._request_id, lambda: completion_callback(completion)),
            job_name="staging_completion",
            request_id=self._request_id,
        )


__all__ = ["STAGING_START_SUBJECT", "StagingState", "StagerTask", "get_callback_executor", "CompletionCallback"]
