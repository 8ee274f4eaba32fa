"""Cartel API Client — the httpx client driven against the app in-process.

Tests cover:
    - vanishing channels: set, count deletions, list by guild, remove
    - practice sessions: start/stop, daily total, leaderboard, total hours
    - applications: submit, lookups, votes; 404 lookups return None
    - identities: ensure_user then lookup by Discord id
    - error envelopes surface as CartelClientError with status and code
"""

import pytest
from httpx import ASGITransport

from app.client import CartelClient, CartelClientError
from app.main import app


@pytest.fixture
async def cartel(client, api_headers):
    async with CartelClient(
        "http://test", api_headers["X-API-Key"], transport=ASGITransport(app=app),
    ) as sdk:
        yield sdk


async def test_vanishing_channels(cartel):
    await cartel.set_vanishing_channel("c1", "g1", 120)

    assert await cartel.record_deletions("c1", 4) == 4
    assert [c["channel_id"] for c in await cartel.list_vanishing_channels("g1")] == ["c1"]
    assert await cartel.list_vanishing_channels("other") == []

    await cartel.remove_vanishing_channel("c1")
    assert await cartel.get_vanishing_channel("c1") is None


async def test_channel_settings(cartel):
    await cartel.set_channel("g1", "applications", "chan-9")
    assert await cartel.get_channel_settings("g1") == {"applications": "chan-9"}


async def test_practice_sessions(cartel):
    started = await cartel.start_session("d-1", notes="scales")
    stopped = await cartel.stop_session("d-1")

    assert stopped["id"] == started["id"]
    assert await cartel.daily_total("d-1") >= 0
    assert await cartel.daily_total("nobody") == 0
    assert isinstance(await cartel.leaderboard(), list)
    assert await cartel.total_hours() >= 0


async def test_applications(cartel):
    created = await cartel.create_application(
        message_id="m-1",
        wallet_address="0x1234567890abcdef1234567890abcdef12345678",
        excitement="Tools",
        motivation="Friends",
        signature="0xsig",
    )
    vote = await cartel.add_vote(created["id"], "voter-1", "Voter", "approve")
    votes = await cartel.list_votes(created["id"])

    assert created["application_number"] == 1
    assert (await cartel.application_by_number(1))["id"] == created["id"]
    assert (await cartel.application_by_message("m-1"))["id"] == created["id"]
    assert await cartel.application_by_message("missing") is None
    assert [p["id"] for p in await cartel.pending_applications()] == [created["id"]]
    assert vote["vote_type"] == "approve"
    assert votes["approval_count"] == 1


async def test_status_change_without_token_rejected(cartel):
    created = await cartel.create_application(
        message_id="m-2",
        wallet_address="0x1234567890abcdef1234567890abcdef12345678",
        excitement="Tools",
        motivation="Friends",
        signature="0xsig",
    )

    with pytest.raises(CartelClientError) as raised:
        await cartel.update_application_status(created["id"], "approved")
    assert raised.value.status_code == 401


async def test_identities(cartel):
    user_id = await cartel.ensure_user("discord", "4242")

    assert await cartel.user_id_by_discord("4242") == user_id
    assert await cartel.ensure_user("discord", "4242") == user_id
    assert await cartel.user_id_by_discord("unknown") is None


async def test_validation_error_raised(cartel):
    with pytest.raises(CartelClientError) as raised:
        await cartel.set_vanishing_channel("c1", "g1", 0)

    assert raised.value.status_code == 400
    assert raised.value.code == "VALIDATION_ERROR"
