"""API Key Service — validation cache, creation and rotation of client API keys.

Invariants:
    - Lookup is by (key_prefix, key_hash); a key validates only if active and unexpired
    - Validated keys are cached by hash for api_key_cache_ttl_seconds (2 min);
      a cached key past its expires_at is dropped on the next lookup
    - Every successful database lookup stamps last_used_at
    - The raw key exists only in the create/rotate return value

Design Decisions:
    - Process-local dict cache over a shared cache: 2 min staleness on deactivation
      is accepted, rotate/deactivate invalidate locally (ADR: single-process deploy)
    - Rotation keeps the old key alive for a grace period so clients can roll over
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.credentials import (
    api_key_prefix, generate_api_key, hash_secret, is_valid_api_key_format,
)
from app.core.domain_types import DEFAULT_KEY_SCOPES, ensure_utc, utc_now
from app.models.api_key import ApiKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidatedKey:
    """Snapshot of an ApiKey row, safe to cache across sessions."""
    id: uuid.UUID
    name: str
    key_prefix: str
    scopes: list[str]
    client_name: str | None
    allowed_origins: list[str] | None
    expires_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class ApiKeyCache:
    """TTL cache keyed by key hash."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[ValidatedKey, float]] = {}

    def get(self, key_hash: str) -> ValidatedKey | None:
        entry = self._entries.get(key_hash)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key_hash]
            return None
        return value

    def put(self, key_hash: str, value: ValidatedKey) -> None:
        self._entries[key_hash] = (value, self._clock() + self.ttl_seconds)

    def invalidate_key(self, key_id: uuid.UUID) -> None:
        stale = [h for h, (v, _) in self._entries.items() if v.id == key_id]
        for h in stale:
            del self._entries[h]

    def clear(self) -> None:
        self._entries.clear()


_cache = ApiKeyCache(get_settings().api_key_cache_ttl_seconds)


def get_api_key_cache() -> ApiKeyCache:
    return _cache


def _snapshot(key: ApiKey) -> ValidatedKey:
    return ValidatedKey(
        id=key.id,
        name=key.name,
        key_prefix=key.key_prefix,
        scopes=list(key.scopes or []),
        client_name=key.client_name,
        allowed_origins=list(key.allowed_origins) if key.allowed_origins else None,
        expires_at=ensure_utc(key.expires_at),
    )


async def validate_api_key(db: AsyncSession, raw_key: str) -> ValidatedKey | None:
    """Resolve a client key to its stored record, or None if unusable."""
    if not is_valid_api_key_format(raw_key):
        return None
    key_hash = hash_secret(raw_key)
    now = utc_now()
    cached = _cache.get(key_hash)
    if cached is not None:
        if not cached.is_expired(now):
            return cached
        _cache.invalidate_key(cached.id)
        return None

    result = await db.execute(
        select(ApiKey).where(
            ApiKey.key_prefix == api_key_prefix(raw_key),
            ApiKey.key_hash == key_hash,
            ApiKey.is_active.is_(True),
            or_(ApiKey.expires_at.is_(None), ApiKey.expires_at > now),
        ),
    )
    key = result.scalar_one_or_none()
    if key is None:
        return None

    await db.execute(
        update(ApiKey).where(ApiKey.id == key.id).values(last_used_at=now),
    )
    await db.commit()
    validated = _snapshot(key)
    _cache.put(key_hash, validated)
    return validated


async def create_api_key(
    db: AsyncSession,
    name: str,
    description: str | None = None,
    scopes: list[str] | None = None,
    client_name: str | None = None,
    allowed_origins: list[str] | None = None,
    expires_at=None,
) -> tuple[ApiKey, str]:
    """Insert a new key. Returns (row, raw_key); the raw key is not recoverable later."""
    raw_key = generate_api_key()
    key = ApiKey(
        name=name,
        description=description,
        key_prefix=api_key_prefix(raw_key),
        key_hash=hash_secret(raw_key),
        scopes=list(scopes or DEFAULT_KEY_SCOPES),
        client_name=client_name,
        allowed_origins=allowed_origins,
        expires_at=expires_at,
        is_active=True,
    )
    db.add(key)
    await db.flush()
    logger.info(f"API key created: {name} ({key.key_prefix})")
    return key, raw_key


async def rotate_api_key(
    db: AsyncSession, key: ApiKey, grace_period_seconds: int = 300,
) -> tuple[ApiKey, str]:
    """Issue a replacement with the same settings and retire the old key.

    grace_period_seconds=0 deactivates the old key immediately, otherwise it
    keeps working until the grace period ends.
    """
    replacement, raw_key = await create_api_key(
        db,
        name=key.name,
        description=key.description,
        scopes=list(key.scopes or DEFAULT_KEY_SCOPES),
        client_name=key.client_name,
        allowed_origins=key.allowed_origins,
        expires_at=key.expires_at,
    )
    if grace_period_seconds > 0:
        key.expires_at = utc_now() + timedelta(seconds=grace_period_seconds)
    else:
        key.is_active = False
    _cache.invalidate_key(key.id)
    logger.info(
        f"API key rotated: {key.key_prefix} -> {replacement.key_prefix} "
        f"(grace {grace_period_seconds}s)",
    )
    return replacement, raw_key


def deactivate_api_key(key: ApiKey) -> None:
    key.is_active = False
    _cache.invalidate_key(key.id)
