"""Error Handlers — map every failure onto the {"error": {...}} envelope.

Invariants:
    - CartelError -> its http_status and to_response() body
    - RateLimitExceededError also sets X-RateLimit-* and Retry-After headers
    - RequestValidationError -> 400 VALIDATION_ERROR with one entry per failing field
    - Any other exception -> 500 INTERNAL_ERROR, no internal details in the body
    - Every envelope carries timestamp and the request id set by the logging middleware
    - HTTPException keeps FastAPI's default handling

Design Decisions:
    - 4xx domain errors logged at WARNING, 5xx at ERROR: client mistakes are not incidents
    - Kept out of main.py so the app module stays a wiring list
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.domain_types import utc_now
from app.core.errors import (
    CartelError, ErrorCategory, ErrorSeverity, RateLimitExceededError,
)

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CartelError, handle_cartel_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _envelope(
    request: Request,
    code: str,
    message: str,
    category: ErrorCategory,
    severity: ErrorSeverity,
    **extra,
) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category.value,
            "severity": severity.value,
            "timestamp": utc_now().isoformat(),
            "context": {"request_id": _request_id(request)},
            **extra,
        },
    }


async def handle_cartel_error(request: Request, exc: CartelError) -> JSONResponse:
    if exc.context.request_id is None:
        exc.context.request_id = _request_id(request)
    logger.log(
        logging.ERROR if exc.http_status >= 500 else logging.WARNING,
        f"{exc.code}: {exc.message}",
        extra={
            "error_code": exc.code,
            "path": request.url.path,
            "status_code": exc.http_status,
            "request_id": exc.context.request_id,
        },
    )
    headers = None
    if isinstance(exc, RateLimitExceededError):
        headers = {**exc.headers, "Retry-After": str(exc.retry_after_seconds)}
    return JSONResponse(
        status_code=exc.http_status, content=exc.to_response(), headers=headers,
    )


async def handle_validation_error(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(loc) for loc in e["loc"]),
            "message": e["msg"],
            "type": e["type"],
        }
        for e in exc.errors()
    ]
    logger.warning(
        f"Validation error on {request.url.path}: {len(details)} field(s)",
        extra={"path": request.url.path, "status_code": 400},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            request, "VALIDATION_ERROR", "Invalid request data",
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, details=details,
        ),
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception on {request.url.path}: {exc}",
        exc_info=True,
        extra={"path": request.url.path, "status_code": 500},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            request, "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )
