"""Log Routes — admin search, statistics and retention cleanup over persisted logs.

Invariants:
    - Admin only
    - Pagination is page-based: offset = (page - 1) * limit; total_pages = ceil(total / limit)
    - Sorting is restricted to SORT_COLUMNS; ties break on id for stable pages
    - cleanup deletes rows strictly older than now - days (days >= 1)
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import require_admin, require_api_key
from app.core.domain_types import LogLevel, utc_now
from app.db.types import array_overlaps, dialect_name
from app.infrastructure.database import get_db
from app.models.log_entry import LogEntry
from app.schemas.logs import log_to_dict

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/logs", tags=["logs"],
    dependencies=[Depends(require_api_key), Depends(require_admin)],
)

SORT_COLUMNS = {
    "timestamp": LogEntry.timestamp,
    "level": LogEntry.level,
    "route": LogEntry.route,
    "duration": LogEntry.duration,
    "status_code": LogEntry.status_code,
}
TOP_ROUTES_LIMIT = 10
RECENT_ERRORS_LIMIT = 10


@router.get("")
async def list_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=1000),
    level: LogLevel | None = Query(None),
    start_date: datetime | None = Query(None),
    end_date: datetime | None = Query(None),
    user_id: str | None = Query(None),
    route: str | None = Query(None),
    method: str | None = Query(None),
    status_code: int | None = Query(None),
    search: str | None = Query(None),
    category: str | None = Query(None),
    operation: str | None = Query(None),
    environment: str | None = Query(None),
    service: str | None = Query(None),
    error_name: str | None = Query(None),
    tags: str | None = Query(None, description="Comma-separated; any may match"),
    sort_by: Literal["timestamp", "level", "route", "duration", "status_code"] = Query("timestamp"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    db: AsyncSession = Depends(get_db),
):
    conditions = []
    if level is not None:
        conditions.append(LogEntry.level == level.value)
    if start_date is not None:
        conditions.append(LogEntry.timestamp >= start_date)
    if end_date is not None:
        conditions.append(LogEntry.timestamp <= end_date)
    if user_id:
        conditions.append(LogEntry.user_id == user_id)
    if route:
        conditions.append(LogEntry.route.like(f"%{route}%"))
    if method:
        conditions.append(LogEntry.method == method.upper())
    if status_code is not None:
        conditions.append(LogEntry.status_code == status_code)
    if search:
        pattern = f"%{search}%"
        conditions.append(
            or_(LogEntry.message.ilike(pattern), LogEntry.error_stack.ilike(pattern)),
        )
    for column, value in (
        (LogEntry.category, category),
        (LogEntry.operation, operation),
        (LogEntry.environment, environment),
        (LogEntry.service, service),
        (LogEntry.error_name, error_name),
    ):
        if value:
            conditions.append(column == value)
    if tags:
        wanted = [t.strip() for t in tags.split(",") if t.strip()]
        if wanted:
            conditions.append(array_overlaps(LogEntry.tags, wanted, dialect_name(db)))

    total = (
        await db.execute(select(func.count(LogEntry.id)).where(*conditions))
    ).scalar_one()

    column = SORT_COLUMNS[sort_by]
    order = column.asc() if sort_order == "asc" else column.desc()
    result = await db.execute(
        select(LogEntry)
        .where(*conditions)
        .order_by(order, LogEntry.id)
        .limit(limit)
        .offset((page - 1) * limit),
    )
    return {
        "logs": [log_to_dict(entry) for entry in result.scalars().all()],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


@router.get("/stats")
async def log_stats(db: AsyncSession = Depends(get_db)):
    total = (await db.execute(select(func.count(LogEntry.id)))).scalar_one()

    by_level = {level.value: 0 for level in LogLevel}
    level_rows = await db.execute(
        select(LogEntry.level, func.count(LogEntry.id)).group_by(LogEntry.level),
    )
    for level, count in level_rows.all():
        by_level[level] = count

    route_count = func.count(LogEntry.id)
    route_rows = await db.execute(
        select(LogEntry.route, route_count)
        .where(LogEntry.route.is_not(None))
        .group_by(LogEntry.route)
        .order_by(route_count.desc(), LogEntry.route)
        .limit(TOP_ROUTES_LIMIT),
    )

    errors = await db.execute(
        select(LogEntry)
        .where(LogEntry.level.in_([LogLevel.ERROR.value, LogLevel.FATAL.value]))
        .order_by(LogEntry.timestamp.desc(), LogEntry.id)
        .limit(RECENT_ERRORS_LIMIT),
    )
    return {
        "total_logs": total,
        "logs_by_level": by_level,
        "top_routes": [
            {"route": route, "count": count} for route, count in route_rows.all()
        ],
        "recent_errors": [log_to_dict(entry) for entry in errors.scalars().all()],
    }


@router.delete("/cleanup")
async def cleanup_logs(
    days: int = Query(30, ge=1),
    db: AsyncSession = Depends(get_db),
):
    cutoff = utc_now() - timedelta(days=days)
    result = await db.execute(delete(LogEntry).where(LogEntry.timestamp < cutoff))
    await db.commit()
    deleted = result.rowcount or 0
    logger.info(f"Deleted {deleted} logs older than {days} days")
    return {
        "success": True,
        "message": f"Successfully deleted {deleted} logs older than {days} days",
        "deleted_count": deleted,
    }
