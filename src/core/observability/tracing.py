"""
OpenTelemetry Tracing

Provides distributed tracing with W3C trace context propagation across
the outbox, the bus and the job queue.

Trace context crosses two kinds of boundaries here:
- rows (outbox events, scheduled jobs) store it as traceparent/tracestate
  strings captured at insert time;
- bus messages carry it as headers next to event_id/event_type.
"""

import logging
from typing import Optional, Dict, Any, List, Tuple
from contextlib import contextmanager

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.trace import Status, StatusCode, Span
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from opentelemetry.propagate import set_global_textmap

logger = logging.getLogger(__name__)

TRACEPARENT = "traceparent"
TRACESTATE = "tracestate"

# Global tracer
_tracer: Optional[trace.Tracer] = None
_propagator = TraceContextTextMapPropagator()


def init_tracing(
    service_name: str = "appremind",
    service_version: str = "1.0.0",
    otlp_endpoint: Optional[str] = None,
    console_export: bool = False
) -> trace.Tracer:
    """
    Initialize OpenTelemetry tracing.

    Args:
        service_name: Name of the service
        service_version: Version of the service
        otlp_endpoint: OTLP exporter endpoint (e.g., "http://localhost:4317")
        console_export: Enable console export for debugging

    Returns:
        Configured tracer
    """
    global _tracer

    resource = Resource.create({
        SERVICE_NAME: service_name,
        SERVICE_VERSION: service_version,
    })

    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True)
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))
        logger.info(f"OTel tracing: OTLP exporter configured -> {otlp_endpoint}")

    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))
        logger.info("OTel tracing: Console exporter enabled")

    trace.set_tracer_provider(provider)
    set_global_textmap(_propagator)

    _tracer = trace.get_tracer(service_name, service_version)

    logger.info(f"OTel tracing initialized: {service_name} v{service_version}")

    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the global tracer."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("appremind")
    return _tracer


def get_current_span() -> Optional[Span]:
    """Get the current active span."""
    return trace.get_current_span()


def get_trace_id() -> Optional[str]:
    """Get the current trace ID as hex string."""
    span = get_current_span()
    if span and span.get_span_context().is_valid:
        return format(span.get_span_context().trace_id, '032x')
    return None


@contextmanager
def create_span(
    name: str,
    attributes: Dict[str, Any] = None,
    kind: trace.SpanKind = trace.SpanKind.INTERNAL,
    context: Optional[otel_context.Context] = None
):
    """
    Create a new span as context manager.

    Usage:
        with create_span("outbox.publish_batch", {"batch.size": 10}) as span:
            ...
    """
    tracer = get_tracer()

    with tracer.start_as_current_span(
        name,
        context=context,
        kind=kind,
        attributes=attributes or {}
    ) as span:
        try:
            yield span
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


def trace_context_strings() -> Tuple[str, str]:
    """Current trace context as (traceparent, tracestate); empty when no span."""
    carrier: Dict[str, str] = {}
    _propagator.inject(carrier)
    return carrier.get(TRACEPARENT, ""), carrier.get(TRACESTATE, "")


def context_from_trace_strings(traceparent: str, tracestate: str) -> otel_context.Context:
    """Rebuild a context from stored carrier strings (current context if both empty)."""
    if not traceparent and not tracestate:
        return otel_context.get_current()
    carrier = {TRACEPARENT: traceparent, TRACESTATE: tracestate}
    return _propagator.extract(carrier)


@contextmanager
def use_trace_strings(traceparent: str, tracestate: str):
    """Make the stored trace context current for the duration of the block."""
    token = otel_context.attach(context_from_trace_strings(traceparent, tracestate))
    try:
        yield
    finally:
        otel_context.detach(token)


def inject_trace_headers(headers: List[Tuple[str, bytes]]) -> List[Tuple[str, bytes]]:
    """
    Append the current trace context to bus message headers.

    Existing keys are overwritten rather than duplicated.
    """
    carrier: Dict[str, str] = {}
    _propagator.inject(carrier)
    result = [(key, value) for key, value in headers if key not in carrier]
    result.extend((key, value.encode()) for key, value in carrier.items())
    return result


def extract_trace_headers(headers: List[Tuple[str, bytes]]) -> otel_context.Context:
    """Extract a context from bus message headers."""
    carrier = {
        key: value.decode(errors="replace")
        for key, value in headers
        if key in (TRACEPARENT, TRACESTATE)
    }
    return _propagator.extract(carrier)


def add_event_to_span(
    name: str,
    attributes: Dict[str, Any] = None,
    span: Optional[Span] = None
):
    """Add an event to the current span."""
    span = span or get_current_span()
    if span:
        span.add_event(name, attributes or {})
