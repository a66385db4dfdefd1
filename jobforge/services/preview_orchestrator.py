"""Preview Orchestrator: validate, launch, await Running, stream outputs.

Phases: idle -> validating -> starting -> awaiting_running -> streaming -> terminated.

Validation and launch run in the caller's task so their errors surface
synchronously. Everything after the launch (status polling and the output
subscription) runs in one background asyncio task per session. Starting a
new preview, or closing the orchestrator, cancels that task; cancellation
exits the subscription's `async with` and releases the HTTP response.

Failed status fetches back off exponentially up to PREVIEW_MAX_BACKOFF.
The total wait for Running is bounded by PREVIEW_MAX_WAIT. A Failed job ends
the session.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import NoReturn

import structlog

from jobforge.core.api_client import PipelineApiClient
from jobforge.core.config import settings
from jobforge.core.errors import (
    PollTimeoutError,
    PreviewCancelledError,
    StreamError,
    TerminalJobError,
    TransportError,
    ValidationError,
)
from jobforge.core.logging_config import bind_session_context
from jobforge.core.metrics import (
    job_launches_total,
    job_status_polls_total,
    preview_output_records_total,
    preview_sessions_active,
    preview_sessions_total,
    preview_time_to_running_seconds,
)
from jobforge.schemas.job import JobLifecycleState, PreviewOutcome
from jobforge.schemas.pipeline import (
    BuiltinKind,
    BuiltinSink,
    ErrorsResult,
    GraphResult,
    LaunchRequest,
)
from jobforge.services.preview_session import PreviewSession
from jobforge.services.query_validator import QueryValidator, udf_definitions

logger = structlog.stdlib.get_logger(__name__)

PREVIEW_SINK = BuiltinSink(value=BuiltinKind.WEB)


class PreviewOrchestrator:
    """Owns at most one live PreviewSession at a time."""

    def __init__(
        self,
        api: PipelineApiClient,
        validator: QueryValidator,
        *,
        editor_id: str | None = None,
        poll_interval: float | None = None,
        max_backoff: float | None = None,
        max_wait: float | None = None,
        job_name: str | None = None,
    ):
        cfg = settings.preview
        self._api = api
        self._validator = validator
        self._editor_id = editor_id
        self._poll_interval = poll_interval if poll_interval is not None else cfg.preview_poll_interval
        self._max_backoff = max_backoff if max_backoff is not None else cfg.preview_max_backoff
        self._max_wait = max_wait if max_wait is not None else cfg.preview_max_wait
        self._job_name = job_name or cfg.preview_job_name
        self._session: PreviewSession | None = None
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def session(self) -> PreviewSession | None:
        """The current session. Observers must treat it as read-only."""
        return self._session

    async def start_preview(self, query: str, udfs: str) -> PreviewSession:
        """Validate and launch a preview job, then poll and stream in the background.

        Supersedes any previous session: its task is cancelled first.

        Raises:
            ValidationError: the compiler rejected the query; nothing launched.
            TransportError: validation or launch could not be completed.
            PreviewCancelledError: close() ran while validating or launching.
        """
        async with self._lock:
            if self._closed:
                raise RuntimeError("PreviewOrchestrator is closed")
            await self._cancel_task()

            session = PreviewSession()
            self._session = session

            session.begin_validation()
            try:
                result = await self._validator.validate(query, udfs)
            except TransportError as exc:
                session.reject(str(exc))
                raise
            if self._closed:
                self._abandon(session)

            match result:
                case ErrorsResult(errors=errors):
                    session.reject(result.first_message)
                    raise ValidationError(errors)
                case GraphResult(graph=graph):
                    session.begin_launch(graph)

            request = LaunchRequest(
                name=self._job_name,
                query=query,
                udfs=udf_definitions(udfs),
                sink=PREVIEW_SINK,
                preview=True,
            )
            try:
                job_id = await self._api.launch_job(request)
            except TransportError as exc:
                job_launches_total.labels(mode="preview", status="error").inc()
                session.terminate(PreviewOutcome.FAILED, error=str(exc))
                preview_sessions_total.labels(outcome=PreviewOutcome.FAILED.value).inc()
                raise

            job_launches_total.labels(mode="preview", status="ok").inc()
            if self._closed:
                # Preview jobs are ephemeral; the remote service reaps this one
                self._abandon(session, job_id)
            session.assign_job_id(job_id)
            logger.info("preview_launched", job_id=job_id, editor_id=self._editor_id)

            self._task = asyncio.create_task(
                self._run(session, job_id), name=f"preview-{job_id}"
            )
            return session

    async def wait(self) -> PreviewSession | None:
        """Wait for the current session's background work to finish."""
        task = self._task
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        return self._session

    async def close(self) -> None:
        """Teardown: cancel in-flight polling/streaming and refuse new previews."""
        self._closed = True
        await self._cancel_task()

    async def _cancel_task(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        # A task cancelled before its first step never reaches _run's handler,
        # and close() can land while start_preview is still awaiting the API
        session = self._session
        if session is not None and session.is_live:
            session.terminate(PreviewOutcome.CANCELLED)
            preview_sessions_total.labels(outcome=PreviewOutcome.CANCELLED.value).inc()

    def _abandon(self, session: PreviewSession, job_id: str | None = None) -> NoReturn:
        """Give up on a start that close() overtook. No task is created."""
        if session.is_live:
            session.terminate(PreviewOutcome.CANCELLED)
            preview_sessions_total.labels(outcome=PreviewOutcome.CANCELLED.value).inc()
        logger.info("preview_abandoned", job_id=job_id, editor_id=self._editor_id)
        raise PreviewCancelledError(
            f"Editor {self._editor_id} was closed before its preview started"
        )

    async def _run(self, session: PreviewSession, job_id: str) -> None:
        """Background task: await Running, then consume the output stream."""
        bind_session_context(editor_id=self._editor_id, job_id=job_id)
        preview_sessions_active.inc()
        try:
            if await self._await_running(session, job_id):
                await self._stream(session, job_id)
        except asyncio.CancelledError:
            session.terminate(PreviewOutcome.CANCELLED)
            logger.info("preview_cancelled")
            raise
        except TerminalJobError as exc:
            logger.warning("preview_job_failed", error=str(exc))
            session.terminate(PreviewOutcome.FAILED, error=str(exc))
        except PollTimeoutError as exc:
            logger.warning("preview_timed_out", waited=exc.waited)
            session.terminate(PreviewOutcome.TIMED_OUT, error=str(exc))
        except StreamError as exc:
            logger.warning("preview_stream_failed", error=str(exc))
            session.terminate(PreviewOutcome.STREAM_ERROR, error=str(exc))
        except Exception as exc:
            logger.exception("preview_task_crashed")
            session.terminate(PreviewOutcome.FAILED, error=f"Preview failed: {exc}")
        finally:
            preview_sessions_active.dec()
            if session.outcome is not None:
                preview_sessions_total.labels(outcome=session.outcome.value).inc()

    async def _await_running(self, session: PreviewSession, job_id: str) -> bool:
        """Poll job status until Running.

        Returns False when the job ended (Stopped/Finished) before running,
        in which case the session is already terminated.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self._max_wait
        delay = self._poll_interval

        while True:
            try:
                details = await self._api.get_job_details(job_id)
            except TransportError as exc:
                job_status_polls_total.labels(loop="preview", status="error").inc()
                delay = min(delay * 2, self._max_backoff)
                logger.warning(
                    "job_status_poll_failed", error=str(exc), retry_in=delay
                )
            else:
                job_status_polls_total.labels(loop="preview", status="ok").inc()
                state = details.job_status.state
                session.observe_status(state)

                match state:
                    case JobLifecycleState.RUNNING:
                        preview_time_to_running_seconds.observe(loop.time() - started)
                        return True
                    case JobLifecycleState.FAILED:
                        raise TerminalJobError(job_id, details.job_status.failure_message)
                    case JobLifecycleState.STOPPED:
                        session.terminate(PreviewOutcome.STOPPED)
                        return False
                    case JobLifecycleState.FINISHED:
                        session.terminate(PreviewOutcome.FINISHED)
                        return False
                delay = self._poll_interval

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PollTimeoutError(job_id, self._max_wait, JobLifecycleState.RUNNING.value)
            await asyncio.sleep(min(delay, remaining))

    async def _stream(self, session: PreviewSession, job_id: str) -> None:
        """Consume the output subscription into the session's bounded buffer."""
        session.open_stream()
        logger.info("preview_stream_opened")
        try:
            async with contextlib.aclosing(self._api.subscribe_outputs(job_id)) as outputs:
                async for payload in outputs:
                    session.append_output(payload)
                    preview_output_records_total.inc()
        except TransportError as exc:
            raise StreamError(job_id, str(exc)) from exc

        outcome = PreviewOutcome.STOPPED if session.stop_requested else PreviewOutcome.FINISHED
        session.terminate(outcome)
        logger.info(
            "preview_stream_closed",
            outcome=outcome.value,
            records=session.outputs.last_sequence_id,
        )
