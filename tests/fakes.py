"""Canned remote API payloads and a fake output subscription."""

import asyncio
from collections.abc import AsyncIterator

from jobforge.schemas.job import JobDetails, JobLifecycleState, JobStatus, OutputData
from jobforge.schemas.pipeline import (
    ErrorMessage,
    ErrorsResult,
    GraphResult,
    JobEdge,
    JobGraph,
    JobNode,
)

JOB_ID = "job_0001"

SAMPLE_GRAPH = JobGraph(
    nodes=[
        JobNode(node_id="source_1", operator="ImpulseSource", parallelism=1),
        JobNode(node_id="sink_2", operator="GrpcSink", parallelism=1),
    ],
    edges=[JobEdge(src_id="source_1", dest_id="sink_2", edge_type="Forward")],
)


def job_details(state: JobLifecycleState, job_id: str = JOB_ID, **status) -> JobDetails:
    return JobDetails(job_id=job_id, job_status=JobStatus(state=state, **status))


def graph_result(graph: JobGraph = SAMPLE_GRAPH) -> GraphResult:
    return GraphResult(graph=graph)


def errors_result(*messages: str) -> ErrorsResult:
    return ErrorsResult(errors=[ErrorMessage(message=m) for m in messages])


def output(i: int) -> OutputData:
    return OutputData(operator_id="sink_2", timestamp=1_700_000_000 + i, value=f'{{"n": {i}}}')


async def stream_of(
    payloads, *, error: Exception | None = None, hold: asyncio.Event | None = None
) -> AsyncIterator[OutputData]:
    """Fake output subscription: yield payloads, then optionally wait or fail."""
    for payload in payloads:
        yield payload
    if hold is not None:
        await hold.wait()
    if error is not None:
        raise error
