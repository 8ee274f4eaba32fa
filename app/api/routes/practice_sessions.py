"""Practice Session Routes — start/stop timers and per-day practice statistics.

Invariants:
    - Addressed by discord_id or user_id; /start with an unknown Discord id creates
      the user and its primary discord identity
    - /start is idempotent while a session is open: the open session is returned
    - /stop on a user without an open session -> 404
    - Stats read only: an unknown Discord id yields zero totals, never a new user
    - Weekly/monthly maps contain every day of the window (0 when idle)

Design Decisions:
    - Day windows computed in app.core.practice_stats (pure), SUM/GROUP BY in SQL
      (ADR: aggregation near the data, calendar logic testable without a DB)
"""

import logging
import uuid
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_rls_db, rate_limit, require_api_key
from app.core.domain_types import Platform, WebhookEventType, ensure_utc, utc_now
from app.core.errors import ResourceNotFoundError
from app.core.practice_stats import (
    elapsed_seconds, fill_daily_totals, format_day, monthly_days,
    seconds_to_hours, weekly_days,
)
from app.models.practice_session import PracticeSession
from app.models.user import User, UserIdentity
from app.schemas.practice import PracticeStart, PracticeStop, practice_session_to_dict
from app.services.identity_service import find_or_create_by_identity, get_identity
from app.services.webhook_dispatcher import trigger_webhook_event

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/sessions/practice", tags=["practice"],
    dependencies=[Depends(require_api_key)],
)

LEADERBOARD_SIZE = 10


async def _resolve_target(
    db: AsyncSession, discord_id: str | None, user_id: uuid.UUID | None,
) -> uuid.UUID:
    if user_id is not None:
        if await db.get(User, user_id) is None:
            raise ResourceNotFoundError("User", str(user_id))
        return user_id
    user, _ = await find_or_create_by_identity(db, Platform.DISCORD, discord_id)
    return user.id


async def _active_session(db: AsyncSession, user_id: uuid.UUID) -> PracticeSession | None:
    result = await db.execute(
        select(PracticeSession)
        .where(
            PracticeSession.user_id == user_id,
            PracticeSession.end_time.is_(None),
        )
        .order_by(PracticeSession.start_time.desc())
        .limit(1),
    )
    return result.scalar_one_or_none()


async def _stats_user(db: AsyncSession, kind: str, ident: str) -> uuid.UUID | None:
    """Map {discord|user}/{id} to a user id without side effects."""
    if kind == "discord":
        row = await get_identity(db, Platform.DISCORD, ident)
        return row.user_id if row else None
    try:
        return uuid.UUID(ident)
    except ValueError:
        return None


async def _totals_by_day(
    db: AsyncSession, user_id: uuid.UUID | None, first: str, last: str,
) -> dict[str, int]:
    if user_id is None:
        return {}
    result = await db.execute(
        select(PracticeSession.date, func.coalesce(func.sum(PracticeSession.duration), 0))
        .where(
            PracticeSession.user_id == user_id,
            PracticeSession.date >= first,
            PracticeSession.date <= last,
        )
        .group_by(PracticeSession.date),
    )
    return {day: int(total) for day, total in result.all()}


@router.post("/start", dependencies=[Depends(rate_limit("write"))])
async def start_session(body: PracticeStart, db: AsyncSession = Depends(get_rls_db)):
    user_id = await _resolve_target(db, body.discord_id, body.user_id)
    active = await _active_session(db, user_id)
    if active is not None:
        await db.commit()
        return practice_session_to_dict(active)

    now = utc_now()
    session = PracticeSession(
        user_id=user_id,
        start_time=now,
        date=format_day(date.today()),
        notes=body.notes,
    )
    db.add(session)
    await db.commit()
    logger.info("Practice session started", extra={"user_id": str(user_id)})
    return practice_session_to_dict(session)


@router.post("/stop", dependencies=[Depends(rate_limit("write"))])
async def stop_session(
    body: PracticeStop,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_rls_db),
):
    user_id = await _resolve_target(db, body.discord_id, body.user_id)
    active = await _active_session(db, user_id)
    if active is None:
        await db.commit()
        raise ResourceNotFoundError("Active practice session", str(user_id))

    end = utc_now()
    active.end_time = end
    active.duration = elapsed_seconds(ensure_utc(active.start_time), end)
    await db.commit()

    background_tasks.add_task(
        trigger_webhook_event,
        WebhookEventType.PRACTICE_SESSION_COMPLETED.value,
        {
            "session_id": str(active.id),
            "user_id": str(user_id),
            "duration": active.duration,
            "date": active.date,
        },
    )
    return practice_session_to_dict(active)


@router.get("/stats/daily/{kind}/{ident}")
async def daily_stats(
    kind: str,
    ident: str,
    day: date | None = Query(None, alias="date"),
    db: AsyncSession = Depends(get_rls_db),
):
    if kind not in ("discord", "user"):
        raise ResourceNotFoundError("Stats target", kind)
    target_day = format_day(day or date.today())
    user_id = await _stats_user(db, kind, ident)
    if user_id is None:
        return {"date": target_day, "total_duration": 0, "sessions": 0}
    result = await db.execute(
        select(
            func.coalesce(func.sum(PracticeSession.duration), 0),
            func.count(PracticeSession.id),
        ).where(
            PracticeSession.user_id == user_id,
            PracticeSession.date == target_day,
        ),
    )
    total, count = result.one()
    return {"date": target_day, "total_duration": int(total), "sessions": int(count)}


@router.get("/stats/weekly/{kind}/{ident}")
async def weekly_stats(kind: str, ident: str, db: AsyncSession = Depends(get_rls_db)):
    if kind not in ("discord", "user"):
        raise ResourceNotFoundError("Stats target", kind)
    days = weekly_days(date.today())
    user_id = await _stats_user(db, kind, ident)
    totals = await _totals_by_day(db, user_id, days[0], days[-1])
    return fill_daily_totals(days, totals)


@router.get("/stats/monthly/{kind}/{ident}")
async def monthly_stats(kind: str, ident: str, db: AsyncSession = Depends(get_rls_db)):
    if kind not in ("discord", "user"):
        raise ResourceNotFoundError("Stats target", kind)
    days = monthly_days(date.today())
    user_id = await _stats_user(db, kind, ident)
    totals = await _totals_by_day(db, user_id, days[0], days[-1])
    return fill_daily_totals(days, totals)


@router.get("/leaderboard")
async def leaderboard(db: AsyncSession = Depends(get_rls_db)):
    """Top practitioners by total duration, keyed by Discord id."""
    total = func.coalesce(func.sum(PracticeSession.duration), 0)
    result = await db.execute(
        select(UserIdentity.identity, total.label("total_duration"))
        .select_from(PracticeSession)
        .join(
            UserIdentity,
            and_(
                UserIdentity.user_id == PracticeSession.user_id,
                UserIdentity.platform == Platform.DISCORD.value,
            ),
        )
        .group_by(UserIdentity.identity)
        .order_by(total.desc(), UserIdentity.identity)
        .limit(LEADERBOARD_SIZE),
    )
    return [
        {"discord_id": identity, "total_duration": int(duration)}
        for identity, duration in result.all()
    ]


@router.get("/total-hours")
async def total_hours(db: AsyncSession = Depends(get_rls_db)):
    result = await db.execute(
        select(func.coalesce(func.sum(PracticeSession.duration), 0)),
    )
    return {"total_hours": seconds_to_hours(int(result.scalar_one()))}
