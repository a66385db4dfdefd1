"""Async client for the remote pipeline service.

Covers the compiler (validate), the job launcher, job status/stop, and the
server-streamed output subscription. Uses httpx over JSON; the output
subscription is newline-delimited JSON on a long-lived response.

Every failure leaves this module as a TransportError (or its
RemoteRejectedError subclass when the server sent a readable rejection),
so callers never see raw httpx or pydantic exceptions.
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import httpx
import pydantic
import structlog

from jobforge.core.config import settings
from jobforge.core.errors import RemoteRejectedError, StreamError, TransportError
from jobforge.core.metrics import remote_call_duration_seconds, remote_call_errors_total
from jobforge.schemas.job import JobDetails, OutputData, StopMode
from jobforge.schemas.pipeline import (
    ErrorMessage,
    ErrorsResult,
    GraphResult,
    JobGraph,
    LaunchRequest,
    PipelineDef,
    SinkDef,
    SourceDef,
    UdfDefinition,
    ValidationResult,
)

logger = structlog.stdlib.get_logger("jobforge.api_client")


def _error_message(response: httpx.Response) -> str | None:
    """Pull a human-readable message out of an error response body."""
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or None
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return None


def _raise_for_status(operation: str, response: httpx.Response) -> None:
    """Classify a non-2xx response as a rejection or a transport failure."""
    if response.is_success:
        return
    message = _error_message(response)
    if response.is_client_error and message:
        remote_call_errors_total.labels(operation=operation, kind="rejected").inc()
        raise RemoteRejectedError(
            message, status_code=response.status_code, operation=operation
        )
    remote_call_errors_total.labels(operation=operation, kind="transport").inc()
    raise TransportError(
        f"{operation} returned HTTP {response.status_code}", operation=operation
    )


@dataclass
class PipelineApiClient:
    """Async client for the remote pipeline service.

    One httpx.AsyncClient is created lazily and reused for all calls,
    including the streaming output subscriptions.
    """

    base_url: str
    token: str = ""
    timeout: float = 10.0
    transport: httpx.AsyncBaseTransport | None = None

    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self.transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: dict | None = None,
    ) -> Any:
        client = self._get_client()
        start = time.perf_counter()
        try:
            response = await client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            remote_call_errors_total.labels(operation=operation, kind="transport").inc()
            raise TransportError(f"{operation} failed: {exc}", operation=operation) from exc
        finally:
            remote_call_duration_seconds.labels(operation=operation).observe(
                time.perf_counter() - start
            )

        _raise_for_status(operation, response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            remote_call_errors_total.labels(operation=operation, kind="transport").inc()
            raise TransportError(
                f"{operation} returned a non-JSON body", operation=operation
            ) from exc

    def _parse(self, operation: str, model: type[pydantic.BaseModel], data: Any):
        try:
            return model.model_validate(data)
        except pydantic.ValidationError as exc:
            remote_call_errors_total.labels(operation=operation, kind="transport").inc()
            raise TransportError(
                f"{operation} returned an unexpected payload: {exc.error_count()} errors",
                operation=operation,
            ) from exc

    async def ping(self) -> bool:
        """Health check."""
        try:
            await self._request("ping", "GET", "/v1/ping")
            return True
        except TransportError as exc:
            logger.info("pipeline_api_ping_failed", reason=str(exc))
            return False

    async def get_pipeline(self, pipeline_id: str) -> PipelineDef:
        data = await self._request("get_pipeline", "GET", f"/v1/pipelines/{pipeline_id}")
        return self._parse("get_pipeline", PipelineDef, data)

    async def get_sources(self) -> list[SourceDef]:
        data = await self._request("get_sources", "GET", "/v1/sources") or {}
        return [self._parse("get_sources", SourceDef, s) for s in data.get("sources", [])]

    async def get_sinks(self) -> list[SinkDef]:
        data = await self._request("get_sinks", "GET", "/v1/sinks") or {}
        return [self._parse("get_sinks", SinkDef, s) for s in data.get("sinks", [])]

    async def validate_graph(
        self, query: str, udfs: list[UdfDefinition]
    ) -> ValidationResult:
        """Compile query + UDFs remotely.

        A compile failure is a normal ErrorsResult. Only a response that is
        neither a graph nor a non-empty error list is a protocol failure.
        """
        body = {"query": query, "udfs": [u.model_dump(mode="json") for u in udfs]}
        data = await self._request(
            "validate_graph", "POST", "/v1/pipelines/validate", json=body
        ) or {}

        if data.get("graph") is not None:
            graph = self._parse("validate_graph", JobGraph, data["graph"])
            return GraphResult(graph=graph)

        errors = data.get("errors") or []
        if errors:
            messages = [self._parse("validate_graph", ErrorMessage, e) for e in errors]
            return ErrorsResult(errors=messages)

        remote_call_errors_total.labels(operation="validate_graph", kind="transport").inc()
        raise TransportError(
            "validate_graph returned neither a graph nor errors",
            operation="validate_graph",
        )

    async def launch_job(self, request: LaunchRequest) -> str:
        """Create a job and return its id."""
        body: dict[str, Any] = {
            "name": request.name,
            "query": request.query,
            "udfs": [u.model_dump(mode="json") for u in request.udfs],
            "sink": request.sink.model_dump(mode="json"),
            "preview": request.preview,
        }
        if request.parallelism is not None:
            body["parallelism"] = request.parallelism
        if request.checkpoint_interval_ms is not None:
            body["checkpoint_interval_micros"] = request.checkpoint_interval_ms * 1000

        data = await self._request("launch_job", "POST", "/v1/pipelines", json=body) or {}
        job_id = data.get("job_id")
        if not job_id:
            remote_call_errors_total.labels(operation="launch_job", kind="transport").inc()
            raise TransportError("launch_job returned no job_id", operation="launch_job")
        return str(job_id)

    async def get_job_details(self, job_id: str) -> JobDetails:
        data = await self._request("get_job_details", "GET", f"/v1/jobs/{job_id}")
        return self._parse("get_job_details", JobDetails, data)

    async def update_job(self, job_id: str, stop: StopMode) -> None:
        await self._request(
            "update_job", "PATCH", f"/v1/jobs/{job_id}", json={"stop": stop.value}
        )

    async def subscribe_outputs(self, job_id: str) -> AsyncIterator[OutputData]:
        """Yield output records until the server closes the stream.

        Normal closure simply ends iteration. Failing to open the stream
        raises TransportError; a connection or decode failure mid-stream
        raises StreamError. Wrap the iterator in contextlib.aclosing() so
        the response is released as soon as the consumer stops.
        """
        client = self._get_client()
        stream_timeout = httpx.Timeout(self.timeout, read=None)
        try:
            async with client.stream(
                "GET", f"/v1/jobs/{job_id}/output", timeout=stream_timeout
            ) as response:
                if not response.is_success:
                    await response.aread()
                    _raise_for_status("subscribe_outputs", response)

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        yield OutputData.model_validate_json(line)
                    except pydantic.ValidationError as exc:
                        raise StreamError(job_id, f"undecodable record: {line[:100]}") from exc
        except httpx.HTTPError as exc:
            remote_call_errors_total.labels(
                operation="subscribe_outputs", kind="transport"
            ).inc()
            raise StreamError(job_id, str(exc) or type(exc).__name__) from exc


def get_api_client() -> PipelineApiClient:
    return PipelineApiClient(
        base_url=settings.api.api_base_url,
        token=settings.api.api_token,
        timeout=settings.api.api_timeout,
    )
