"""Stop Controller: stops a preview job and waits for confirmed termination.

`active` is flipped to False exactly once per stop, and only after a status
fetch returned Stopped. Confirmation polls are spaced by STOP_POLL_INTERVAL
and failed fetches back off. The wait is bounded by STOP_MAX_WAIT.
"""

import asyncio

import structlog

from jobforge.core.api_client import PipelineApiClient
from jobforge.core.config import settings
from jobforge.core.errors import PollTimeoutError, TerminalJobError, TransportError
from jobforge.core.metrics import job_status_polls_total
from jobforge.schemas.job import JobLifecycleState, StopMode
from jobforge.services.preview_session import PreviewSession

logger = structlog.stdlib.get_logger(__name__)


class StopController:
    def __init__(
        self,
        api: PipelineApiClient,
        *,
        poll_interval: float | None = None,
        max_backoff: float | None = None,
        max_wait: float | None = None,
    ):
        cfg = settings.preview
        self._api = api
        self._poll_interval = poll_interval if poll_interval is not None else cfg.stop_poll_interval
        self._max_backoff = max_backoff if max_backoff is not None else cfg.preview_max_backoff
        self._max_wait = max_wait if max_wait is not None else cfg.stop_max_wait

    async def stop_preview(self, session: PreviewSession | None) -> None:
        """Stop the session's job immediately and wait until it is Stopped.

        No-op when there is no session or no job has been launched yet.

        Raises:
            TransportError: the stop command itself could not be delivered.
            TerminalJobError: the job failed instead of stopping.
            PollTimeoutError: Stopped was not observed within the max wait.
        """
        if session is None or session.job_id is None:
            return

        job_id = session.job_id
        session.begin_stop()
        logger.info("preview_stop_requested", job_id=job_id)
        try:
            await self._api.update_job(job_id, StopMode.IMMEDIATE)
            stopped = await self._await_stopped(job_id)
        except (TransportError, TerminalJobError, PollTimeoutError) as exc:
            session.abort_stop(str(exc))
            logger.warning("preview_stop_failed", job_id=job_id, error=str(exc))
            raise

        if stopped:
            session.confirm_stopped()
            logger.info("preview_stopped", job_id=job_id)
        else:
            session.abort_stop(f"Job {job_id} finished before it could be stopped")

    async def _await_stopped(self, job_id: str) -> bool:
        """Poll until Stopped (True) or Finished (False)."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._max_wait
        delay = self._poll_interval

        while True:
            try:
                details = await self._api.get_job_details(job_id)
            except TransportError as exc:
                job_status_polls_total.labels(loop="stop", status="error").inc()
                delay = min(delay * 2, self._max_backoff)
                logger.warning(
                    "job_status_poll_failed", job_id=job_id, error=str(exc), retry_in=delay
                )
            else:
                job_status_polls_total.labels(loop="stop", status="ok").inc()
                match details.job_status.state:
                    case JobLifecycleState.STOPPED:
                        return True
                    case JobLifecycleState.FINISHED:
                        return False
                    case JobLifecycleState.FAILED:
                        raise TerminalJobError(job_id, details.job_status.failure_message)
                delay = self._poll_interval

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise PollTimeoutError(job_id, self._max_wait, JobLifecycleState.STOPPED.value)
            await asyncio.sleep(min(delay, remaining))
