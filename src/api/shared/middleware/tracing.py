"""
OpenTelemetry Tracing Middleware

FastAPI middleware for automatic request tracing with OpenTelemetry.
The request span is current while the handler runs, so outbox rows
written by the handler capture it and the trace continues on the bus.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from opentelemetry import trace

from ....core.observability.tracing import (
    TRACEPARENT,
    TRACESTATE,
    context_from_trace_strings,
    get_tracer,
    get_trace_id,
)

logger = logging.getLogger(__name__)

UNTRACED_PATHS = ("/health",)


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that creates OpenTelemetry spans for HTTP requests.

    Features:
    - Extracts W3C trace context from incoming headers
    - Creates a SERVER span with standard HTTP attributes
    - Returns the trace id in X-Trace-ID
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in UNTRACED_PATHS:
            return await call_next(request)

        context = context_from_trace_strings(
            request.headers.get(TRACEPARENT, ""),
            request.headers.get(TRACESTATE, "")
        )

        tracer = get_tracer()

        with tracer.start_as_current_span(
            f"{request.method} {request.url.path}",
            context=context,
            kind=trace.SpanKind.SERVER,
            attributes={
                "http.method": request.method,
                "http.route": request.url.path,
                "http.scheme": request.url.scheme,
            }
        ) as span:
            try:
                response = await call_next(request)
            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise

            span.set_attribute("http.status_code", response.status_code)

            trace_id = get_trace_id()
            if trace_id:
                response.headers["X-Trace-ID"] = trace_id

            return response
