"""
Shared API Utilities

Common utilities, responses, and middleware for all API endpoints.
"""

from .responses import (
    ErrorDetail,
    ErrorBody,
    ErrorResponse,
)

from .error_codes import (
    ErrorCode,
    get_status_code,
    is_client_error,
    is_server_error,
)

from .exceptions import (
    APIException,
    ValidationError,
    NotFoundError,
    ConflictError,
    DatabaseError,
)

from .middleware import (
    register_error_handlers,
    TracingMiddleware,
)

__all__ = [
    # Responses
    "ErrorDetail",
    "ErrorBody",
    "ErrorResponse",
    # Error codes
    "ErrorCode",
    "get_status_code",
    "is_client_error",
    "is_server_error",
    # Exceptions
    "APIException",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "DatabaseError",
    # Middleware
    "register_error_handlers",
    "TracingMiddleware",
]
