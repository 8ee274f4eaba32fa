"""Health Probes — liveness and readiness for the orchestrator.

Invariants:
    - GET /health/ answers 200 while the process runs, with service name, version and time
    - GET /health/ready answers 503 when the database does not respond
    - The log sink backlog is reported but never fails readiness
    - No API key: probes come from the platform, not from API clients
"""

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.config import get_settings
from app.core.domain_types import utc_now
from app.infrastructure import database
from app.infrastructure.log_sink import get_log_sink

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/health", tags=["health"])


@router.get("/", status_code=status.HTTP_200_OK)
async def liveness():
    settings = get_settings()
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.service_version,
        "timestamp": utc_now().isoformat(),
    }


@router.get("/ready")
async def readiness():
    manager = database.db_manager
    if manager is None or not await manager.health_check():
        logger.warning("Readiness probe failed: database unavailable")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "reason": "database_unavailable"},
        )

    checks: dict[str, object] = {"database": "healthy"}
    sink = get_log_sink()
    if sink is not None:
        checks["log_sink_pending"] = sink.pending
    return {"status": "ready", "checks": checks}
