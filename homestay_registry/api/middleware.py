"""FastAPI middleware for request tracing, access logs and metrics"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from homestay_registry.infrastructure.observability.metrics import request_duration_histogram

MAX_REQUEST_ID_LENGTH = 128


def incoming_request_id(request: Request) -> str:
    """Caller-supplied X-Request-ID when it is usable, otherwise a fresh one"""
    candidate = (request.headers.get("X-Request-ID") or "").strip()
    if candidate and len(candidate) <= MAX_REQUEST_ID_LENGTH and candidate.isprintable():
        return candidate
    return str(uuid.uuid4())


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Carry one request ID through logs, timeline entries and the response"""

    async def dispatch(self, request: Request, call_next):
        request_id = incoming_request_id(request)
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Request duration histogram plus one structured access log line"""

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()

        response = await call_next(request)

        duration = time.perf_counter() - started
        # Route template keeps application ids out of the label set
        route = getattr(request.scope.get("route"), "path", request.url.path)
        request_duration_histogram.labels(
            method=request.method,
            endpoint=route,
            status=response.status_code,
        ).observe(duration)

        if route not in ("/health", "/metrics"):
            logging.info(
                "Request completed",
                extra={
                    "request_id": getattr(request.state, "request_id", None),
                    "method": request.method,
                    "route": route,
                    "status_code": response.status_code,
                    "duration_ms": round(duration * 1000, 2),
                    "user_id": request.headers.get("X-User-Id"),
                },
            )
        return response
