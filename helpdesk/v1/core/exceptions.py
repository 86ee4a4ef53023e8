import uuid
from datetime import UTC, datetime
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from helpdesk.config.logging import add_request_context, get_logger

logger = get_logger(__name__)


class HelpdeskException(Exception):
    """Base exception for the helpdesk application."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(HelpdeskException):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class NotFoundError(HelpdeskException):
    """Raised when a resource is not found."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


# Job engine errors


class UnknownEventError(ValidationError):
    """Raised when an event name has no entry in the event table."""

    def __init__(self, event_name: str):
        super().__init__(
            f"Unknown event: {event_name}", details={"event": event_name}
        )
        self.event_name = event_name


class UnknownJobTypeError(Exception):
    """Raised when no handler is registered for a job type.

    Retrying cannot help, so the processor dead-letters the job immediately.
    """

    def __init__(self, job_type: str):
        super().__init__(f"No handler found for job type: {job_type}")
        self.job_type = job_type


class JobTimeoutError(TimeoutError):
    """Raised when a handler does not settle within the configured timeout."""

    def __init__(self, job_id: int, timeout_s: float):
        super().__init__(f"Job {job_id} timed out after {timeout_s:g}s")
        self.job_id = job_id
        self.timeout_s = timeout_s


class InvalidRecurrencePatternError(ValueError):
    """Raised for recurrence patterns outside the supported set."""


def create_error_response(
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response envelope."""
    return {
        "ok": False,
        "error": {
            "message": message,
            "code": status_code,
            "details": details or {},
        },
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def create_success_response(
    data: Any, message: str | None = None, request_id: str | None = None
) -> dict[str, Any]:
    """Create standardized success response envelope."""
    return {
        "ok": True,
        "data": data,
        "message": message,
        "request_id": request_id,
        "timestamp": datetime.now(UTC).isoformat(),
    }


def _error_json(
    request: Request,
    status_code: int,
    message: str,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(
            status_code, message, details, getattr(request.state, "request_id", None)
        ),
    )


async def helpdesk_exception_handler(
    request: Request, exc: HelpdeskException
) -> JSONResponse:
    logger.error(
        "Application exception",
        exception=exc.__class__.__name__,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
    )
    return _error_json(request, exc.status_code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    logger.warning("HTTP exception", status_code=exc.status_code, detail=exc.detail)
    return _error_json(request, exc.status_code, str(exc.detail))


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled exception", exception=exc.__class__.__name__, exc_info=True)
    return _error_json(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id shared by its log lines, envelope and headers."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        add_request_context(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
