"""HTTP observability: request ids, editor log context, access log, metrics."""

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from jobforge.core.metrics import http_request_duration_seconds, http_requests_total

REQUEST_ID_HEADER = "X-Request-ID"

_EDITOR_PATH = re.compile(r"^/api/v1/editors/(?P<editor_id>[^/]+)")
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

logger = structlog.stdlib.get_logger("jobforge.http")


def _request_id(request: Request) -> str:
    """Reuse the caller's request id when it is well formed, else mint one."""
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _VALID_REQUEST_ID.match(incoming):
        return incoming
    return uuid.uuid4().hex


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Binds request_id (and editor_id on editor routes) for the request's logs,
    then records one access log line and the HTTP metrics.

    The preview WebSocket is not instrumented here.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.scope.get("type") == "websocket":
            return await call_next(request)

        request_id = _request_id(request)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        editor = _EDITOR_PATH.match(request.url.path)
        if editor:
            structlog.contextvars.bind_contextvars(editor_id=editor["editor_id"])

        method = request.method
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._record(request, method, 500, time.perf_counter() - start)
            logger.exception("request_failed", method=method, path=request.url.path)
            structlog.contextvars.clear_contextvars()
            raise

        duration = time.perf_counter() - start
        path = self._record(request, method, response.status_code, duration)
        response.headers[REQUEST_ID_HEADER] = request_id

        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            method=method,
            path=path,
            status=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )

        structlog.contextvars.clear_contextvars()
        return response

    @staticmethod
    def _record(request: Request, method: str, status: int, duration: float) -> str:
        # Route template keeps editor ids out of the label set
        route = request.scope.get("route")
        path = route.path if route else request.url.path
        http_requests_total.labels(method=method, path=path, status=status).inc()
        http_request_duration_seconds.labels(method=method, path=path).observe(duration)
        return path
