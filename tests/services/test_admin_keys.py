"""Admin API Keys — issue, list, update, deactivate, rotate; issued keys authenticate.

Tests cover:
    - Raw key returned once; listings show the masked prefix only
    - A created key authenticates /api/v1 routes and stamps last_used_at
    - Scope-less keys (read/write) cannot reach admin routes
    - Deactivation and zero-grace rotation cut the old key off immediately
    - Rotation with grace keeps the old key alive with an expiry
    - A cached key stops authenticating once its expires_at passes
"""

import uuid
from datetime import timedelta

from app.core.domain_types import utc_now
from app.models.api_key import ApiKey
from app.services import api_key_service


async def _create(client, api_headers, **body):
    response = await client.post(
        "/api/v1/admin/keys", json={"name": "discord-bot", **body}, headers=api_headers,
    )
    assert response.status_code == 201
    return response.json()


async def test_create_returns_raw_key_once(client, api_headers):
    created = await _create(client, api_headers, client_name="Bot")

    assert created["key"].startswith("cartel_")
    assert created["key_prefix"] == f"cartel_{created['key'][7:15]}..."
    assert created["scopes"] == ["read", "write"]

    listed = await client.get("/api/v1/admin/keys", headers=api_headers)
    assert listed.json()["total"] == 1
    assert "key" not in listed.json()["keys"][0]


async def test_created_key_authenticates(client, api_headers, test_session_factory):
    created = await _create(client, api_headers)

    response = await client.get(
        "/api/v1/users/id/by-discord/none", headers={"X-API-Key": created["key"]},
    )

    assert response.status_code == 404
    async with test_session_factory() as db:
        key = await db.get(ApiKey, uuid.UUID(created["id"]))
    assert key.last_used_at is not None


async def test_read_write_key_cannot_manage_keys(client, api_headers):
    created = await _create(client, api_headers)

    response = await client.get(
        "/api/v1/admin/keys", headers={"X-API-Key": created["key"]},
    )

    assert response.status_code == 403


async def test_admin_scoped_key_can_manage_keys(client, api_headers):
    created = await _create(client, api_headers, scopes=["admin"])

    response = await client.get(
        "/api/v1/admin/keys", headers={"X-API-Key": created["key"]},
    )

    assert response.status_code == 200


async def test_update_key(client, api_headers):
    created = await _create(client, api_headers)

    response = await client.patch(
        f"/api/v1/admin/keys/{created['id']}",
        json={"name": "renamed", "scopes": ["read"]},
        headers=api_headers,
    )

    assert response.status_code == 200
    assert response.json()["name"] == "renamed"
    assert response.json()["scopes"] == ["read"]


async def test_deactivate_key(client, api_headers):
    created = await _create(client, api_headers)
    # Warm the validation cache, deactivation must still take effect
    await client.get("/api/v1/users/id/by-discord/x", headers={"X-API-Key": created["key"]})

    deleted = await client.delete(
        f"/api/v1/admin/keys/{created['id']}", headers=api_headers,
    )
    after = await client.get(
        "/api/v1/users/id/by-discord/x", headers={"X-API-Key": created["key"]},
    )

    assert deleted.status_code == 200
    assert after.status_code == 401
    active = await client.get(
        "/api/v1/admin/keys?include_inactive=false", headers=api_headers,
    )
    assert active.json()["total"] == 0


async def test_rotate_without_grace(client, api_headers):
    created = await _create(client, api_headers)

    rotated = await client.post(
        f"/api/v1/admin/keys/{created['id']}/rotate",
        json={"grace_period": 0},
        headers=api_headers,
    )

    assert rotated.status_code == 201
    assert rotated.json()["key"] != created["key"]
    assert rotated.json()["previous_key"]["is_active"] is False
    old = await client.get(
        "/api/v1/users/id/by-discord/x", headers={"X-API-Key": created["key"]},
    )
    new = await client.get(
        "/api/v1/users/id/by-discord/x", headers={"X-API-Key": rotated.json()["key"]},
    )
    assert old.status_code == 401
    assert new.status_code == 404


async def test_rotate_with_grace_keeps_old_key(client, api_headers):
    created = await _create(client, api_headers)

    rotated = await client.post(
        f"/api/v1/admin/keys/{created['id']}/rotate", headers=api_headers,
    )

    assert rotated.json()["grace_period"] == 300
    assert rotated.json()["previous_key"]["expires_at"] is not None
    old = await client.get(
        "/api/v1/users/id/by-discord/x", headers={"X-API-Key": created["key"]},
    )
    assert old.status_code == 404


async def test_unknown_key_404(client, api_headers):
    response = await client.get(f"/api/v1/admin/keys/{uuid.uuid4()}", headers=api_headers)
    assert response.status_code == 404


async def test_cached_key_expires(client, api_headers, monkeypatch):
    created = await _create(
        client, api_headers,
        expires_at=(utc_now() + timedelta(minutes=1)).isoformat(),
    )
    headers = {"X-API-Key": created["key"]}

    fresh = await client.get("/api/v1/users/id/by-discord/none", headers=headers)
    later = utc_now() + timedelta(minutes=5)
    monkeypatch.setattr(api_key_service, "utc_now", lambda: later)
    expired = await client.get("/api/v1/users/id/by-discord/none", headers=headers)

    assert fresh.status_code == 404
    assert expired.status_code == 401
    assert expired.json()["error"]["code"] == "INVALID_API_KEY"
