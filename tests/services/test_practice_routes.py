"""Practice Session Routes — timers, daily/weekly/monthly stats, leaderboard, total hours.

Tests cover:
    - /start creates the Discord user on first use and is idempotent while open
    - /stop records a non-negative duration; without an open session → 404
    - Stats fill every day of the window and never create users
    - Leaderboard keyed by Discord id, sorted by total duration
"""

import uuid
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import select

from app.core.practice_stats import format_day
from app.models.practice_session import PracticeSession
from app.models.user import User, UserIdentity

BASE = "/api/v1/sessions/practice"


async def _add_session(factory, user_id, day: str, duration: int):
    async with factory() as db:
        db.add(PracticeSession(
            user_id=user_id,
            start_time=datetime.now(timezone.utc) - timedelta(seconds=duration),
            end_time=datetime.now(timezone.utc),
            duration=duration,
            date=day,
        ))
        await db.commit()


async def test_start_creates_discord_user(client, api_headers, test_session_factory):
    response = await client.post(
        f"{BASE}/start", json={"discord_id": "4242"}, headers=api_headers,
    )

    assert response.status_code == 200
    assert response.json()["end_time"] is None
    assert response.json()["date"] == format_day(date.today())
    async with test_session_factory() as db:
        identity = (await db.execute(
            select(UserIdentity).where(UserIdentity.identity == "4242"),
        )).scalar_one()
    assert str(identity.user_id) == response.json()["user_id"]


async def test_start_is_idempotent_while_open(client, api_headers):
    first = await client.post(f"{BASE}/start", json={"discord_id": "1"}, headers=api_headers)
    second = await client.post(f"{BASE}/start", json={"discord_id": "1"}, headers=api_headers)
    assert first.json()["id"] == second.json()["id"]


async def test_start_requires_a_target(client, api_headers):
    response = await client.post(f"{BASE}/start", json={}, headers=api_headers)
    assert response.status_code == 400


async def test_start_unknown_user_id(client, api_headers):
    response = await client.post(
        f"{BASE}/start", json={"user_id": str(uuid.uuid4())}, headers=api_headers,
    )
    assert response.status_code == 404


async def test_stop_records_duration(client, api_headers):
    started = await client.post(
        f"{BASE}/start", json={"discord_id": "7"}, headers=api_headers,
    )

    stopped = await client.post(f"{BASE}/stop", json={"discord_id": "7"}, headers=api_headers)

    assert stopped.status_code == 200
    assert stopped.json()["id"] == started.json()["id"]
    assert stopped.json()["end_time"] is not None
    assert stopped.json()["duration"] >= 0


async def test_stop_without_open_session(client, api_headers, make_user):
    user = await make_user()
    response = await client.post(
        f"{BASE}/stop", json={"user_id": str(user.id)}, headers=api_headers,
    )
    assert response.status_code == 404


async def test_daily_stats(client, api_headers, make_user, test_session_factory):
    user = await make_user(identity="99")
    await _add_session(test_session_factory, user.id, "2026-05-01", 600)
    await _add_session(test_session_factory, user.id, "2026-05-01", 300)
    await _add_session(test_session_factory, user.id, "2026-05-02", 50)

    by_discord = await client.get(
        f"{BASE}/stats/daily/discord/99?date=2026-05-01", headers=api_headers,
    )
    by_user = await client.get(
        f"{BASE}/stats/daily/user/{user.id}?date=2026-05-02", headers=api_headers,
    )

    assert by_discord.json() == {"date": "2026-05-01", "total_duration": 900, "sessions": 2}
    assert by_user.json()["total_duration"] == 50


async def test_stats_for_unknown_discord_id_are_zero(
    client, api_headers, test_session_factory,
):
    response = await client.get(f"{BASE}/stats/weekly/discord/ghost", headers=api_headers)

    assert response.status_code == 200
    assert len(response.json()) == 7
    assert set(response.json().values()) == {0}
    async with test_session_factory() as db:
        assert (await db.execute(select(User))).scalars().all() == []


async def test_weekly_stats_fill_window(client, api_headers, make_user, test_session_factory):
    user = await make_user(identity="55")
    today = format_day(date.today())
    long_ago = format_day(date.today() - timedelta(days=30))
    await _add_session(test_session_factory, user.id, today, 120)
    await _add_session(test_session_factory, user.id, long_ago, 999)

    response = await client.get(f"{BASE}/stats/weekly/discord/55", headers=api_headers)

    totals = response.json()
    assert list(totals)[-1] == today
    assert totals[today] == 120
    assert sum(totals.values()) == 120


async def test_monthly_stats_cover_month(client, api_headers, make_user):
    user = await make_user()
    response = await client.get(f"{BASE}/stats/monthly/user/{user.id}", headers=api_headers)

    days = list(response.json())
    assert days[0].endswith("-01")
    assert all(day[:7] == format_day(date.today())[:7] for day in days)


async def test_invalid_stats_kind(client, api_headers):
    response = await client.get(f"{BASE}/stats/daily/github/x", headers=api_headers)
    assert response.status_code == 404


async def test_leaderboard_and_total_hours(
    client, api_headers, make_user, test_session_factory,
):
    low = await make_user(identity="low")
    high = await make_user(identity="high")
    await _add_session(test_session_factory, low.id, "2026-01-01", 1800)
    await _add_session(test_session_factory, high.id, "2026-01-01", 3600)
    await _add_session(test_session_factory, high.id, "2026-01-02", 3600)

    board = await client.get(f"{BASE}/leaderboard", headers=api_headers)
    hours = await client.get(f"{BASE}/total-hours", headers=api_headers)

    assert board.json() == [
        {"discord_id": "high", "total_duration": 7200},
        {"discord_id": "low", "total_duration": 1800},
    ]
    assert hours.json() == {"total_hours": 2.5}
