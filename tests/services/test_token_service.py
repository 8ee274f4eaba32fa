"""Token Service — access JWTs and refresh-token families against a real DB session.

Tests cover:
    - Access token round trip, default scopes, client_id
    - Tampered, foreign-secret and wrong-type tokens rejected
    - Rotation keeps the family; reuse revokes it
    - A token consumed between validation and rotation revokes its family
    - Expired tokens never validate; cleanup removes them and revoked tokens past 90 days
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import select, update

from app.config import get_settings
from app.core.credentials import hash_secret
from app.models.refresh_token import RefreshToken
from app.services import token_service
from app.services.token_service import (
    cleanup_expired_tokens, create_access_token, issue_token_pair,
    rotate_refresh_token, validate_refresh_token, verify_access_token,
)


def test_access_token_round_trip():
    user_id = uuid.uuid4()
    issued = create_access_token(user_id, client_id="client-1")

    claims = verify_access_token(issued.token)

    assert claims.user_id == str(user_id)
    assert claims.scopes == ["read", "write"]
    assert claims.client_id == "client-1"
    assert issued.expires_in == 900


def test_access_token_with_foreign_secret_rejected():
    token = jwt.encode(
        {"sub": "u", "type": "access", "exp": 9_999_999_999},
        "another-secret-of-sufficient-length-for-hs256",
        algorithm="HS256",
    )
    assert verify_access_token(token) is None


def test_non_access_token_rejected():
    token = jwt.encode(
        {"sub": "u", "type": "refresh", "exp": 9_999_999_999},
        get_settings().jwt_secret,
        algorithm="HS256",
    )
    assert verify_access_token(token) is None


def test_expired_access_token_rejected():
    token = jwt.encode(
        {"sub": "u", "type": "access", "exp": 1},
        get_settings().jwt_secret,
        algorithm="HS256",
    )
    assert verify_access_token(token) is None


def test_garbage_token_rejected():
    assert verify_access_token("not-a-jwt") is None


async def test_refresh_token_stored_hashed(test_db, make_user):
    user = await make_user()
    pair = await issue_token_pair(test_db, user.id)
    await test_db.commit()

    stored = (await test_db.execute(select(RefreshToken))).scalar_one()
    assert stored.token_hash == hash_secret(pair.refresh_token)
    assert pair.refresh_token not in (stored.token_hash,)
    assert pair.refresh_expires_in == 30 * 24 * 3600


async def test_rotation_stays_in_family(test_db, make_user):
    user = await make_user()
    pair = await issue_token_pair(test_db, user.id)
    rotated = await rotate_refresh_token(test_db, pair.refresh_token)
    await test_db.commit()

    rows = (await test_db.execute(select(RefreshToken))).scalars().all()
    assert rotated is not None
    assert len(rows) == 2
    assert len({r.family_id for r in rows}) == 1
    assert sum(r.used_at is not None for r in rows) == 1


async def test_reuse_revokes_family(test_db, make_user):
    user = await make_user()
    pair = await issue_token_pair(test_db, user.id)
    await rotate_refresh_token(test_db, pair.refresh_token)

    validation = await validate_refresh_token(test_db, pair.refresh_token)
    await test_db.commit()

    assert not validation.valid
    assert validation.reuse_detected
    rows = (await test_db.execute(
        select(RefreshToken).execution_options(populate_existing=True),
    )).scalars().all()
    assert all(r.revoked_at is not None for r in rows)


async def test_expired_refresh_token_invalid_and_cleaned(test_db, make_user):
    user = await make_user()
    test_db.add(RefreshToken(
        user_id=user.id,
        token_hash=hash_secret("crt_ref_old"),
        family_id=uuid.uuid4(),
        expires_at=datetime.now(timezone.utc) - timedelta(days=1),
    ))
    await test_db.commit()

    validation = await validate_refresh_token(test_db, "crt_ref_old")
    removed = await cleanup_expired_tokens(test_db)
    await test_db.commit()

    assert not validation.valid
    assert validation.reasons == ["not_found_or_expired"]
    assert removed == 1


async def test_rotation_race_revokes_family(test_db, make_user, monkeypatch):
    user = await make_user()
    pair = await issue_token_pair(test_db, user.id)
    await test_db.commit()
    validate = token_service.validate_refresh_token

    async def validate_then_consumed_elsewhere(db, token):
        validation = await validate(db, token)
        await db.execute(
            update(RefreshToken)
            .where(RefreshToken.id == validation.refresh_token.id)
            .values(used_at=datetime.now(timezone.utc)),
        )
        return validation

    monkeypatch.setattr(
        token_service, "validate_refresh_token", validate_then_consumed_elsewhere,
    )

    rotated = await rotate_refresh_token(test_db, pair.refresh_token)
    await test_db.commit()

    assert rotated is None
    rows = (await test_db.execute(
        select(RefreshToken).execution_options(populate_existing=True),
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].revoked_at is not None


async def test_cleanup_keeps_recently_revoked_tokens(test_db, make_user):
    user = await make_user()
    now = datetime.now(timezone.utc)
    for name, revoked_days_ago in (("crt_ref_stale", 91), ("crt_ref_recent", 1)):
        test_db.add(RefreshToken(
            user_id=user.id,
            token_hash=hash_secret(name),
            family_id=uuid.uuid4(),
            expires_at=now + timedelta(days=30),
            revoked_at=now - timedelta(days=revoked_days_ago),
        ))
    await test_db.commit()

    removed = await cleanup_expired_tokens(test_db)
    await test_db.commit()

    remaining = (await test_db.execute(select(RefreshToken.token_hash))).scalars().all()
    assert removed == 1
    assert remaining == [hash_secret("crt_ref_recent")]
