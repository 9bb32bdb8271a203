# ==== CORRELATION ID MIDDLEWARE ==== #

"""
Correlation ID middleware for request tracing in Kundedata.

Assigns or propagates the X-Correlation-Id header, wraps each request in a
span and records request latency.
"""

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from kundedata.observability.logging import bind_request_context, reset_request_context
from kundedata.observability.metrics import http_request_latency_seconds
from kundedata.observability.tracing import get_tracer


tracer = get_tracer(__name__)


def _route_group(path: str) -> str:
    """Collapse a request path to a low-cardinality label (``/api/forms/12`` -> ``forms``)."""
    parts = [p for p in path.split("/") if p]
    if not parts:
        return "root"
    if parts[0] == "api" and len(parts) > 1:
        return parts[1]
    if parts[0] == "f":
        return "public_form"
    return parts[0]


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation IDs to requests and responses.

    The id is stored on ``request.state.correlation_id`` for exception
    handlers and echoed back in the response header.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # --► CORRELATION ID MANAGEMENT
        correlation_id = request.headers.get(
            "X-Correlation-Id",
            str(uuid.uuid4())
        )
        request.state.correlation_id = correlation_id
        context_token = bind_request_context(correlation_id=correlation_id)

        start_time = time.perf_counter()
        try:
            return await self._traced(request, call_next, correlation_id, start_time)
        finally:
            reset_request_context(context_token)

    async def _traced(
        self, request: Request, call_next: Callable, correlation_id: str, start_time: float
    ) -> Response:
        with tracer.start_as_current_span("http_request") as span:
            span.set_attribute("http.method", request.method)
            span.set_attribute("http.url", str(request.url))
            span.set_attribute("correlation_id", correlation_id)

            response = await call_next(request)
            response.headers["X-Correlation-Id"] = correlation_id

            # --► METRICS COLLECTION
            http_request_latency_seconds.labels(
                method=request.method,
                route_group=_route_group(request.url.path),
                status=str(response.status_code)
            ).observe(time.perf_counter() - start_time)

            span.set_attribute("http.status_code", response.status_code)
            return response
