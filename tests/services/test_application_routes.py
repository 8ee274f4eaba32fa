"""Application Routes — numbering, lookups, decisions and votes.

Tests cover:
    - Sequential application_number starting at 1
    - Duplicate message_id → 409
    - pending list newest first; by-message / by-number lookups
    - Status change requires a JWT, sets decided_at, fires a webhook
    - Voting twice replaces the vote; counts per type
    - Delete removes the application and its votes
"""

import json
import uuid

from sqlalchemy import select

from app.models.application import ApplicationVote
from app.models.webhook import WebhookSubscription

WALLET = "0x1234567890abcdef1234567890abcdef12345678"


def _body(message_id: str) -> dict:
    return {
        "message_id": message_id,
        "wallet_address": WALLET,
        "ens_name": "applicant.eth",
        "excitement": "Building onchain tools",
        "motivation": "Learn with others",
        "signature": "0xsig",
    }


async def _submit(client, api_headers, message_id: str) -> dict:
    response = await client.post(
        "/api/v1/users/applications", json=_body(message_id), headers=api_headers,
    )
    assert response.status_code == 201
    return response.json()


async def test_numbers_are_sequential(client, api_headers):
    first = await _submit(client, api_headers, "m-1")
    second = await _submit(client, api_headers, "m-2")

    assert first["application_number"] == 1
    assert second["application_number"] == 2


async def test_duplicate_message_conflicts(client, api_headers):
    await _submit(client, api_headers, "dup")

    response = await client.post(
        "/api/v1/users/applications", json=_body("dup"), headers=api_headers,
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "CONFLICT"


async def test_invalid_wallet_rejected(client, api_headers):
    body = {**_body("bad"), "wallet_address": "not-a-wallet"}
    response = await client.post("/api/v1/users/applications", json=body, headers=api_headers)
    assert response.status_code == 400


async def test_lookups(client, api_headers):
    created = await _submit(client, api_headers, "lookup-1")

    by_id = await client.get(
        f"/api/v1/users/applications/{created['id']}", headers=api_headers,
    )
    by_message = await client.get(
        "/api/v1/users/applications/by-message/lookup-1", headers=api_headers,
    )
    by_number = await client.get(
        "/api/v1/users/applications/by-number/1", headers=api_headers,
    )
    missing = await client.get(
        "/api/v1/users/applications/by-number/99", headers=api_headers,
    )

    assert by_id.json()["status"] == "pending"
    assert by_message.json()["id"] == created["id"]
    assert by_number.json()["message_id"] == "lookup-1"
    assert missing.status_code == 404


async def test_pending_newest_first(client, api_headers, make_user, auth_headers):
    await _submit(client, api_headers, "old")
    decided = await _submit(client, api_headers, "decided")
    await _submit(client, api_headers, "new")
    admin = await make_user(role="admin")
    await client.patch(
        f"/api/v1/users/applications/{decided['id']}/status",
        json={"status": "approved"},
        headers=auth_headers(admin),
    )

    response = await client.get("/api/v1/users/applications/pending", headers=api_headers)

    assert [a["message_id"] for a in response.json()] == ["new", "old"]


async def test_status_change_requires_user(client, api_headers):
    created = await _submit(client, api_headers, "needs-user")
    response = await client.patch(
        f"/api/v1/users/applications/{created['id']}/status",
        json={"status": "approved"},
        headers=api_headers,
    )
    assert response.status_code == 401


async def test_status_change_rejects_pending(client, api_headers, make_user, auth_headers):
    created = await _submit(client, api_headers, "back-to-pending")
    user = await make_user()
    response = await client.patch(
        f"/api/v1/users/applications/{created['id']}/status",
        json={"status": "pending"},
        headers=auth_headers(user),
    )
    assert response.status_code == 400


async def test_status_change_fires_webhook(
    client, api_headers, make_user, auth_headers, test_session_factory, webhook_server,
):
    reviewer = await make_user(role="member")
    async with test_session_factory() as db:
        db.add(WebhookSubscription(
            name="decisions", url="https://hooks.example/apps",
            events=["application_status_changed"], created_by=reviewer.id,
        ))
        await db.commit()
    created = await _submit(client, api_headers, "decide-me")

    response = await client.patch(
        f"/api/v1/users/applications/{created['id']}/status",
        json={"status": "rejected"},
        headers=auth_headers(reviewer),
    )

    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert response.json()["decided_at"] is not None
    assert len(webhook_server.requests) == 1
    payload = json.loads(webhook_server.requests[0].content)
    assert payload["data"]["previous_status"] == "pending"
    assert payload["data"]["decided_by"] == str(reviewer.id)


async def test_vote_replaces_previous(client, api_headers):
    created = await _submit(client, api_headers, "vote-me")
    url = f"/api/v1/users/applications/{created['id']}/votes"

    await client.post(
        url, json={"user_id": "d-1", "user_name": "alice", "vote_type": "approve"},
        headers=api_headers,
    )
    await client.post(
        url, json={"user_id": "d-2", "user_name": "bob", "vote_type": "approve"},
        headers=api_headers,
    )
    changed = await client.post(
        url, json={"user_id": "d-1", "user_name": "alice", "vote_type": "reject"},
        headers=api_headers,
    )
    tally = await client.get(url, headers=api_headers)

    assert changed.json()["vote"]["vote_type"] == "reject"
    assert tally.json()["approval_count"] == 1
    assert tally.json()["rejection_count"] == 1
    assert tally.json()["rejections"][0]["user_name"] == "alice"


async def test_vote_on_unknown_application(client, api_headers):
    response = await client.post(
        f"/api/v1/users/applications/{uuid.uuid4()}/votes",
        json={"user_id": "d-1", "user_name": "alice", "vote_type": "approve"},
        headers=api_headers,
    )
    assert response.status_code == 404


async def test_delete_removes_votes(
    client, api_headers, make_user, auth_headers, test_session_factory,
):
    created = await _submit(client, api_headers, "delete-me")
    await client.post(
        f"/api/v1/users/applications/{created['id']}/votes",
        json={"user_id": "d-1", "user_name": "alice", "vote_type": "approve"},
        headers=api_headers,
    )
    user = await make_user()

    response = await client.delete(
        f"/api/v1/users/applications/{created['id']}", headers=auth_headers(user),
    )

    assert response.json() == {"success": True}
    async with test_session_factory() as db:
        votes = (await db.execute(select(ApplicationVote))).scalars().all()
    assert votes == []
    gone = await client.get(
        f"/api/v1/users/applications/{created['id']}", headers=api_headers,
    )
    assert gone.status_code == 404
