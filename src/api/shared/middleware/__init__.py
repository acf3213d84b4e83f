"""
Shared API Middleware

Provides cross-cutting concerns for all API endpoints:
- Error handling with standardized responses
- OpenTelemetry distributed tracing
"""

from .error_handler import register_error_handlers
from .tracing import TracingMiddleware

__all__ = [
    # Error handling
    "register_error_handlers",
    # OpenTelemetry Tracing
    "TracingMiddleware",
]
