"""Request Logging Middleware — request ids, timing and one structured log line per request.

Invariants:
    - Every response carries X-Request-ID (propagated from the request or generated)
    - One log line per request with method, path, status_code, duration_ms
    - When the DB log sink is running, the same request is queued as a logs row
    - Health probes are not written to the logs table

Design Decisions:
    - Function middleware (app.middleware("http")) over a BaseHTTPMiddleware subclass:
      no state, nothing to configure
    - user_id read from request.state after the handler ran: dependencies populate it
"""

import logging
import time
import uuid

from fastapi import Request, Response

from app.infrastructure.log_sink import get_log_sink

logger = logging.getLogger(__name__)

_SKIP_PERSIST_PREFIX = "/api/v1/health"


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


async def request_logging_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
    request.state.request_id = request_id
    started = time.perf_counter()

    response = await call_next(request)

    duration_ms = int((time.perf_counter() - started) * 1000)
    response.headers["X-Request-ID"] = request_id

    user = getattr(request.state, "user", None)
    user_id = str(user.user_id) if user is not None else None
    extra = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "status_code": response.status_code,
        "duration_ms": duration_ms,
        "user_id": user_id,
    }
    logger.info(
        f"{request.method} {request.url.path} {response.status_code} {duration_ms}ms",
        extra=extra,
    )

    sink = get_log_sink()
    if sink is not None and not request.url.path.startswith(_SKIP_PERSIST_PREFIX):
        level = "info"
        if response.status_code >= 500:
            level = "error"
        elif response.status_code >= 400:
            level = "warn"
        sink.enqueue({
            "level": level,
            "message": f"{request.method} {request.url.path}",
            "route": _route_template(request),
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration": duration_ms,
            "user_id": user_id,
            "user_role": user.role if user is not None else None,
            "client_ip": _client_ip(request),
            "user_agent": request.headers.get("user-agent"),
            "correlation_id": request_id,
            "category": "http",
        })
    return response
