"""
Global Error Handler Middleware

Catches exceptions and returns standardized error responses.
"""

import logging
import traceback
from uuid import uuid4

from fastapi import Request, FastAPI
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from ....core.database.adapter import is_database_error
from ....core.observability.tracing import get_trace_id
from ..exceptions import APIException, DatabaseError
from ..responses import ErrorBody, ErrorDetail
from ..error_codes import ErrorCode, is_server_error

logger = logging.getLogger(__name__)


def _current_trace_id() -> str:
    return get_trace_id() or str(uuid4())


def register_error_handlers(app: FastAPI):
    """
    Register all error handlers on the FastAPI app.

    This function sets up exception handlers for:
    - APIException (custom API errors)
    - RequestValidationError (FastAPI validation)
    - Generic Exception (catch-all; driver errors become DATABASE_ERROR)
    """

    @app.exception_handler(APIException)
    async def api_exception_handler(request: Request, exc: APIException):
        """Handle custom API exceptions."""
        trace_id = exc.trace_id or _current_trace_id()

        log = logger.error if is_server_error(exc.code) else logger.warning
        log(
            f"API Error: {exc.code} - {exc.message}",
            extra={
                "error_code": str(exc.code),
                "path": request.url.path
            }
        )

        error_body = ErrorBody(
            code=exc.code.value if isinstance(exc.code, ErrorCode) else str(exc.code),
            message=exc.message,
            details=exc.details,
            trace_id=trace_id
        )

        return JSONResponse(
            status_code=exc.status_code,
            content={"error": error_body.model_dump(mode="json")}
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle FastAPI validation errors."""
        trace_id = _current_trace_id()

        # Convert Pydantic errors to our format
        details = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            details.append(ErrorDetail(
                field=field,
                message=error["msg"],
                code=error["type"]
            ))

        logger.warning(
            f"Validation Error: {len(details)} field(s)",
            extra={
                "path": request.url.path,
                "errors": [d.model_dump() for d in details]
            }
        )

        error_body = ErrorBody.validation_error(
            "Request validation failed",
            details=details,
            trace_id=trace_id
        )

        return JSONResponse(
            status_code=400,
            content={"error": error_body.model_dump(mode="json")}
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        trace_id = _current_trace_id()

        logger.error(
            f"Unhandled Exception: {type(exc).__name__}: {exc}",
            extra={
                "path": request.url.path,
                "traceback": traceback.format_exc()
            }
        )

        # Don't expose internal details in production
        if is_database_error(exc):
            db_error = DatabaseError()
            error_body = ErrorBody(code=db_error.code.value, message=db_error.message, trace_id=trace_id)
            status_code = db_error.status_code
        else:
            error_body = ErrorBody.internal_error(trace_id=trace_id)
            status_code = 500

        return JSONResponse(
            status_code=status_code,
            content={"error": error_body.model_dump(mode="json")}
        )
