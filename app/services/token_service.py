"""Token Service — signed access tokens and rotating refresh-token families.

Invariants:
    - Access tokens: HS256 JWT, 15 min, payload {sub, scopes, client_id, type="access", iat, exp}
    - Refresh tokens: opaque "crt_ref_..." strings, 30 days, stored as sha256 hash only
    - Rotation marks the presented token used and issues a successor in the SAME family
    - Presenting an already-used token revokes every token in its family (reuse detection)
    - Revoked or expired tokens never validate

Design Decisions:
    - Stateless access tokens (not persisted): revocation granularity is the refresh family,
      access tokens simply age out (ADR: 15 min exposure window accepted)
    - Conditional UPDATE ... WHERE used_at IS NULL when rotating: two concurrent refreshes
      with the same token cannot both win; the loser is treated as reuse
    - Callers own the transaction: functions flush, the route commits
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import jwt
from sqlalchemy import delete, select, update, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.credentials import generate_refresh_token, hash_secret
from app.core.domain_types import DEFAULT_KEY_SCOPES
from app.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_TYPE_ACCESS = "access"
REVOKED_RETENTION_DAYS = 90


@dataclass(frozen=True)
class AccessClaims:
    user_id: str
    scopes: list[str]
    client_id: str | None = None


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_in: int


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_in: int

    def to_response(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "Bearer",
            "expires_in": self.expires_in,
            "refresh_expires_in": self.refresh_expires_in,
        }


@dataclass
class RefreshValidation:
    valid: bool
    refresh_token: RefreshToken | None = None
    family_id: uuid.UUID | None = None
    reuse_detected: bool = False
    reasons: list[str] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ─── Access tokens ───────────────────────────────────────────────

def create_access_token(
    user_id: str | uuid.UUID,
    scopes: list[str] | None = None,
    client_id: str | None = None,
) -> IssuedToken:
    settings = get_settings()
    now = _now()
    ttl = settings.access_token_ttl_seconds
    payload = {
        "sub": str(user_id),
        "scopes": list(scopes or DEFAULT_KEY_SCOPES),
        "client_id": client_id,
        "type": TOKEN_TYPE_ACCESS,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)
    return IssuedToken(token=token, expires_in=ttl)


def verify_access_token(token: str) -> AccessClaims | None:
    """Decode and check an access token. Returns None for anything invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[JWT_ALGORITHM],
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        logger.debug(f"Access token rejected: {e}")
        return None
    if payload.get("type") != TOKEN_TYPE_ACCESS:
        return None
    scopes = payload.get("scopes")
    return AccessClaims(
        user_id=str(payload["sub"]),
        scopes=[str(s) for s in scopes] if isinstance(scopes, list) else list(DEFAULT_KEY_SCOPES),
        client_id=payload.get("client_id"),
    )


# ─── Refresh tokens ──────────────────────────────────────────────

async def create_refresh_token(
    db: AsyncSession,
    user_id: uuid.UUID,
    family_id: uuid.UUID,
    client_id: str | None = None,
) -> IssuedToken:
    settings = get_settings()
    raw = generate_refresh_token()
    ttl = timedelta(days=settings.refresh_token_ttl_days)
    db.add(RefreshToken(
        user_id=user_id,
        token_hash=hash_secret(raw),
        family_id=family_id,
        client_id=client_id,
        expires_at=_now() + ttl,
    ))
    await db.flush()
    return IssuedToken(token=raw, expires_in=int(ttl.total_seconds()))


async def issue_token_pair(
    db: AsyncSession,
    user_id: uuid.UUID,
    client_id: str | None = None,
    scopes: list[str] | None = None,
) -> TokenPair:
    """Start a new refresh family (sign-in)."""
    access = create_access_token(user_id, scopes, client_id)
    refresh = await create_refresh_token(db, user_id, uuid.uuid4(), client_id)
    return TokenPair(
        access_token=access.token,
        refresh_token=refresh.token,
        expires_in=access.expires_in,
        refresh_expires_in=refresh.expires_in,
    )


async def _revoke_family(db: AsyncSession, family_id: uuid.UUID) -> None:
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.family_id == family_id)
        .where(RefreshToken.revoked_at.is_(None))
        .values(revoked_at=_now()),
    )
    logger.warning(
        f"Refresh token reuse detected, family {family_id} revoked",
    )


async def validate_refresh_token(db: AsyncSession, token: str) -> RefreshValidation:
    """Look up an unexpired token; a used token revokes its whole family."""
    result = await db.execute(
        select(RefreshToken).where(
            RefreshToken.token_hash == hash_secret(token),
            RefreshToken.expires_at >= _now(),
        ),
    )
    stored = result.scalar_one_or_none()
    if stored is None:
        return RefreshValidation(valid=False, reasons=["not_found_or_expired"])

    if stored.used_at is not None:
        await _revoke_family(db, stored.family_id)
        return RefreshValidation(
            valid=False, family_id=stored.family_id,
            reuse_detected=True, reasons=["reused"],
        )
    if stored.revoked_at is not None:
        return RefreshValidation(
            valid=False, family_id=stored.family_id, reasons=["revoked"],
        )
    return RefreshValidation(
        valid=True, refresh_token=stored, family_id=stored.family_id,
    )


async def rotate_refresh_token(
    db: AsyncSession, token: str, client_id: str | None = None,
) -> TokenPair | None:
    """Consume a refresh token and issue its successor in the same family."""
    validation = await validate_refresh_token(db, token)
    if not validation.valid or validation.refresh_token is None:
        return None
    stored = validation.refresh_token

    marked = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.id == stored.id)
        .where(RefreshToken.used_at.is_(None))
        .values(used_at=_now()),
    )
    if marked.rowcount != 1:
        # Lost a race against another rotation of the same token
        await _revoke_family(db, stored.family_id)
        return None

    effective_client = client_id or stored.client_id
    access = create_access_token(stored.user_id, None, effective_client)
    refresh = await create_refresh_token(
        db, stored.user_id, stored.family_id, effective_client,
    )
    return TokenPair(
        access_token=access.token,
        refresh_token=refresh.token,
        expires_in=access.expires_in,
        refresh_expires_in=refresh.expires_in,
    )


async def revoke_all_user_tokens(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id)
        .where(RefreshToken.revoked_at.is_(None))
        .values(revoked_at=_now()),
    )
    return result.rowcount or 0


async def cleanup_expired_tokens(db: AsyncSession) -> int:
    """Delete expired tokens and revoked tokens past the retention window."""
    now = _now()
    cutoff = now - timedelta(days=REVOKED_RETENTION_DAYS)
    result = await db.execute(
        delete(RefreshToken).where(
            or_(
                RefreshToken.expires_at < now,
                and_(
                    RefreshToken.revoked_at.is_not(None),
                    RefreshToken.revoked_at < cutoff,
                ),
            ),
        ),
    )
    return result.rowcount or 0
