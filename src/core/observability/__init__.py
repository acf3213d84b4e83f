"""
Observability Module

Provides distributed tracing, metrics collection, and structured logging.
"""

from .tracing import (
    init_tracing,
    get_tracer,
    get_current_span,
    get_trace_id,
    create_span,
    trace_context_strings,
    context_from_trace_strings,
    use_trace_strings,
    inject_trace_headers,
    extract_trace_headers,
    add_event_to_span,
)
from .metrics import (
    init_metrics,
    get_meter,
    record_counter,
    record_histogram,
)
from .logging import configure_logging
from .setup import init_observability

__all__ = [
    # Tracing
    "init_tracing",
    "get_tracer",
    "get_current_span",
    "get_trace_id",
    "create_span",
    "trace_context_strings",
    "context_from_trace_strings",
    "use_trace_strings",
    "inject_trace_headers",
    "extract_trace_headers",
    "add_event_to_span",
    # Metrics
    "init_metrics",
    "get_meter",
    "record_counter",
    "record_histogram",
    # Logging
    "configure_logging",
    # Bootstrap
    "init_observability",
]
