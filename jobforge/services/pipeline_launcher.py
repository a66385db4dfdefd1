"""Pipeline Launcher: starts a durable job from the editor's query."""

import structlog

from jobforge.core.api_client import PipelineApiClient
from jobforge.core.errors import RemoteRejectedError, TransportError
from jobforge.core.metrics import job_launches_total
from jobforge.schemas.pipeline import LaunchOutcome, LaunchRequest, LaunchStatus, StartOptions
from jobforge.services.draft_repository import QUERY_KEY, DraftRepository
from jobforge.services.query_validator import udf_definitions

logger = structlog.stdlib.get_logger(__name__)

FALLBACK_ERROR_MESSAGE = "Something went wrong"


def job_detail_path(job_id: str) -> str:
    return f"/jobs/{job_id}"


class PipelineLauncher:
    def __init__(self, api: PipelineApiClient, drafts: DraftRepository):
        self._api = api
        self._drafts = drafts

    @staticmethod
    def can_start(options: StartOptions) -> bool:
        """Start is disabled until a name is given and a sink is selected."""
        return bool(options.name.strip()) and options.sink is not None

    async def start(self, options: StartOptions, query: str, udfs: str) -> LaunchOutcome:
        """Launch a durable job.

        On success the query draft is cleared and the outcome carries the
        job's detail path to navigate to. A remote rejection surfaces the
        server's message; any other transport failure surfaces a fallback
        message and logs the raw error.
        """
        sink = options.sink
        if sink is None or not self.can_start(options):
            return LaunchOutcome(status=LaunchStatus.DISABLED)

        request = LaunchRequest(
            name=options.name,
            query=query,
            udfs=udf_definitions(udfs),
            sink=sink,
            preview=False,
            parallelism=options.parallelism,
            checkpoint_interval_ms=options.checkpoint_interval_ms,
        )
        try:
            job_id = await self._api.launch_job(request)
        except RemoteRejectedError as exc:
            job_launches_total.labels(mode="pipeline", status="rejected").inc()
            logger.info("pipeline_start_rejected", name=options.name, error=exc.raw_message)
            return LaunchOutcome(status=LaunchStatus.FAILED, error=exc.raw_message)
        except TransportError as exc:
            job_launches_total.labels(mode="pipeline", status="error").inc()
            logger.error("pipeline_start_failed", name=options.name, error=repr(exc))
            return LaunchOutcome(status=LaunchStatus.FAILED, error=FALLBACK_ERROR_MESSAGE)

        job_launches_total.labels(mode="pipeline", status="ok").inc()
        await self._drafts.clear(QUERY_KEY)
        logger.info("pipeline_started", name=options.name, job_id=job_id)
        return LaunchOutcome(
            status=LaunchStatus.LAUNCHED,
            job_id=job_id,
            redirect_to=job_detail_path(job_id),
        )
