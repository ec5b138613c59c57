"""
API 中间件
"""
import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware


logger = logging.getLogger(__name__)

QUIET_PATHS = ("/api/v1/monitoring/health",)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    请求日志中间件：透传 ``X-Request-ID``，记录日志，并写入运行时指标
    ``http_requests`` / ``http_request_seconds``
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed = time.perf_counter() - started
        response.headers["X-Request-ID"] = request_id
        self._record(request, response.status_code, elapsed)

        level = logging.DEBUG if request.url.path in QUIET_PATHS else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"in {elapsed * 1000:.1f}ms [request_id={request_id}]"
        )
        return response

    @staticmethod
    def _record(request: Request, status_code: int, elapsed: float):
        runtime = getattr(request.app.state, "runtime", None)
        if runtime is None:
            return
        route = request.scope.get("route")
        labels = {
            "method": request.method,
            "route": getattr(route, "path", request.url.path),
            "status": str(status_code),
        }
        runtime.metrics.inc("http_requests", labels)
        runtime.metrics.observe("http_request_seconds", elapsed, {"route": labels["route"]})
