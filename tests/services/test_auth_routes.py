"""Auth Routes — SIWE sign-in, refresh-token rotation and revocation.

Tests cover:
    - nonce → verify → tokens → /me, for a new wallet user
    - Nonce mismatch / missing nonce / foreign domain → 400
    - Signature from a different wallet → 401
    - Root API key callers skip the stored-nonce requirement
    - refresh rotates; replaying a used token revokes the whole family
    - revoke invalidates every refresh token of the caller
    - "auth" rate limit preset → 429 with Retry-After
    - ENS name and avatar filled on sign-in; a failed lookup keeps the stored ones
"""

from datetime import datetime, timezone

from eth_account import Account
from eth_account.messages import encode_defunct
from sqlalchemy import select

from app.config import get_settings
from app.infrastructure.ens_resolver import ENSProfile
from app.models.user import User, UserIdentity


def _siwe_text(address: str, nonce: str, domain: str = "localhost:3003") -> str:
    issued = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return (
        f"{domain} wants you to sign in with your Ethereum account:\n"
        f"{address}\n"
        "\n"
        "Sign in to Cartel\n"
        "\n"
        f"URI: http://{domain}\n"
        "Version: 1\n"
        "Chain ID: 1\n"
        f"Nonce: {nonce}\n"
        f"Issued At: {issued}"
    )


def _sign(account, text: str) -> str:
    signed = account.sign_message(encode_defunct(text=text))
    return "0x" + bytes(signed.signature).hex()


async def _sign_in(client, account=None, headers=None):
    account = account or Account.create()
    nonce = (await client.post(
        "/api/v1/auth/nonce", json={"address": account.address},
    )).json()["nonce"]
    text = _siwe_text(account.address, nonce)
    return account, await client.post(
        "/api/v1/auth/verify",
        json={"message": text, "signature": _sign(account, text)},
        headers=headers or {},
    )


async def test_sign_in_creates_wallet_user(client, test_session_factory):
    account, response = await _sign_in(client)

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "Bearer"
    assert body["expires_in"] == 900
    assert body["refresh_token"].startswith("crt_ref_")
    assert body["address"] == account.address.lower()

    async with test_session_factory() as db:
        identity = (await db.execute(
            select(UserIdentity).where(UserIdentity.platform == "evm"),
        )).scalar_one()
    assert identity.identity == account.address.lower()
    assert str(identity.user_id) == body["user_id"]
    assert identity.verified_at is not None


async def test_me_returns_signed_in_user(client):
    account, response = await _sign_in(client)
    token = response.json()["access_token"]

    me = await client.get(
        "/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"},
    )

    assert me.status_code == 200
    assert me.json()["user_id"] == response.json()["user_id"]
    assert me.json()["user"]["identities"][0]["platform"] == "evm"


async def test_second_sign_in_reuses_user(client):
    account, first = await _sign_in(client)
    _, second = await _sign_in(client, account)
    assert first.json()["user_id"] == second.json()["user_id"]


async def test_nonce_mismatch_rejected(client):
    account = Account.create()
    await client.post("/api/v1/auth/nonce", json={"address": account.address})
    text = _siwe_text(account.address, "WrongNonce123")

    response = await client.post(
        "/api/v1/auth/verify",
        json={"message": text, "signature": _sign(account, text)},
    )

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Invalid or expired nonce"


async def test_missing_nonce_rejected_without_api_key(client):
    account = Account.create()
    text = _siwe_text(account.address, "NeverIssued123")

    response = await client.post(
        "/api/v1/auth/verify",
        json={"message": text, "signature": _sign(account, text)},
    )

    assert response.status_code == 400


async def test_root_key_skips_stored_nonce(client, api_headers):
    account = Account.create()
    text = _siwe_text(account.address, "ClientNonce123")

    response = await client.post(
        "/api/v1/auth/verify",
        json={"message": text, "signature": _sign(account, text)},
        headers=api_headers,
    )

    assert response.status_code == 200


async def test_foreign_domain_rejected(client):
    account = Account.create()
    nonce = (await client.post(
        "/api/v1/auth/nonce", json={"address": account.address},
    )).json()["nonce"]
    text = _siwe_text(account.address, nonce, domain="evil.example")

    response = await client.post(
        "/api/v1/auth/verify",
        json={"message": text, "signature": _sign(account, text)},
    )

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Domain not allowed"


async def test_signature_from_other_wallet_rejected(client):
    account, impostor = Account.create(), Account.create()
    nonce = (await client.post(
        "/api/v1/auth/nonce", json={"address": account.address},
    )).json()["nonce"]
    text = _siwe_text(account.address, nonce)

    response = await client.post(
        "/api/v1/auth/verify",
        json={"message": text, "signature": _sign(impostor, text)},
    )

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_SIGNATURE"


async def test_invalid_api_key_rejected(client):
    _, response = await _sign_in(client, headers={"X-API-Key": "cartel_" + "x" * 32})
    assert response.status_code == 401


async def test_refresh_rotates_token(client):
    _, response = await _sign_in(client)
    first = response.json()["refresh_token"]

    rotated = await client.post("/api/v1/auth/refresh", json={"refresh_token": first})

    assert rotated.status_code == 200
    assert rotated.json()["refresh_token"] != first


async def test_refresh_reuse_revokes_family(client):
    _, response = await _sign_in(client)
    first = response.json()["refresh_token"]
    second = (await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": first},
    )).json()["refresh_token"]

    replay = await client.post("/api/v1/auth/refresh", json={"refresh_token": first})
    assert replay.status_code == 401

    # The successor was revoked together with its family
    after = await client.post("/api/v1/auth/refresh", json={"refresh_token": second})
    assert after.status_code == 401


async def test_refresh_unknown_token(client):
    response = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": "crt_ref_unknown"},
    )
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_REFRESH_TOKEN"


async def test_revoke_invalidates_refresh_tokens(client):
    _, response = await _sign_in(client)
    body = response.json()

    revoked = await client.post(
        "/api/v1/auth/revoke",
        headers={"Authorization": f"Bearer {body['access_token']}"},
    )
    assert revoked.status_code == 200
    assert revoked.json()["revoked_count"] == 1

    refresh = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": body["refresh_token"]},
    )
    assert refresh.status_code == 401


async def test_revoke_requires_user(client):
    response = await client.post("/api/v1/auth/revoke")
    assert response.status_code == 401


async def test_auth_rate_limit(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "rate_limit_enabled", True)
    address = Account.create().address

    statuses = []
    for _ in range(6):
        response = await client.post("/api/v1/auth/nonce", json={"address": address})
        statuses.append(response.status_code)

    assert statuses == [200] * 5 + [429]
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert int(response.headers["Retry-After"]) > 0


async def test_sign_in_fills_ens_profile(
    client, ens_profiles, ens_resolver, test_session_factory,
):
    account = Account.create()
    address = account.address.lower()
    ens_profiles[address] = ENSProfile(name="alice.eth", avatar="https://img/alice.png")

    _, first = await _sign_in(client, account)
    ens_profiles[address] = RuntimeError("rpc down")
    ens_resolver.clear()
    _, second = await _sign_in(client, account)

    assert first.json()["ens_name"] == "alice.eth"
    assert second.status_code == 200
    assert second.json()["ens_name"] == "alice.eth"
    async with test_session_factory() as db:
        user = (await db.execute(select(User).where(User.address == address))).scalar_one()
    assert user.ens_avatar == "https://img/alice.png"
