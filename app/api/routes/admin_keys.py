"""Admin API Key Routes — issue, inspect, update, deactivate and rotate client keys.

Invariants:
    - Admin only; the raw key appears exactly once, in the create/rotate response
    - Listings show masked prefixes ("cartel_abcd1234...")
    - DELETE deactivates (soft delete) so audit data keeps its key reference
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import rate_limit, require_admin, require_api_key
from app.core.errors import ResourceNotFoundError
from app.infrastructure.database import get_db
from app.models.api_key import ApiKey
from app.schemas.api_keys import ApiKeyCreate, ApiKeyRotate, ApiKeyUpdate, api_key_to_dict
from app.services.api_key_service import (
    create_api_key, deactivate_api_key, get_api_key_cache, rotate_api_key,
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/admin/keys", tags=["admin"],
    dependencies=[
        Depends(require_api_key), Depends(require_admin),
        Depends(rate_limit("sensitive")),
    ],
)


async def _get_key_or_404(db: AsyncSession, key_id: UUID) -> ApiKey:
    key = await db.get(ApiKey, key_id)
    if key is None:
        raise ResourceNotFoundError("API key", str(key_id))
    return key


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_key(body: ApiKeyCreate, db: AsyncSession = Depends(get_db)):
    key, raw_key = await create_api_key(
        db,
        name=body.name,
        description=body.description,
        scopes=[s.value for s in body.scopes],
        client_name=body.client_name,
        allowed_origins=body.allowed_origins,
        expires_at=body.expires_at,
    )
    await db.commit()
    return {
        **api_key_to_dict(key),
        "key": raw_key,
        "warning": "Store this key securely. It will not be shown again.",
    }


@router.get("")
async def list_keys(
    include_inactive: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    query = select(ApiKey).order_by(ApiKey.created_at.desc())
    if not include_inactive:
        query = query.where(ApiKey.is_active.is_(True))
    keys = (await db.execute(query)).scalars().all()
    return {"keys": [api_key_to_dict(k) for k in keys], "total": len(keys)}


@router.get("/{key_id}")
async def get_key(key_id: UUID, db: AsyncSession = Depends(get_db)):
    return api_key_to_dict(await _get_key_or_404(db, key_id))


@router.patch("/{key_id}")
async def update_key(
    key_id: UUID, body: ApiKeyUpdate, db: AsyncSession = Depends(get_db),
):
    key = await _get_key_or_404(db, key_id)
    changes = body.model_dump(exclude_unset=True)
    if "scopes" in changes and changes["scopes"] is not None:
        changes["scopes"] = [s.value for s in body.scopes]
    for field, value in changes.items():
        setattr(key, field, value)
    await db.commit()
    get_api_key_cache().invalidate_key(key.id)
    return api_key_to_dict(key)


@router.delete("/{key_id}")
async def delete_key(key_id: UUID, db: AsyncSession = Depends(get_db)):
    key = await _get_key_or_404(db, key_id)
    deactivate_api_key(key)
    await db.commit()
    logger.info(f"API key deactivated: {key.key_prefix}")
    return {"message": "API key deactivated", "id": str(key.id)}


@router.post("/{key_id}/rotate", status_code=status.HTTP_201_CREATED)
async def rotate_key(
    key_id: UUID,
    body: ApiKeyRotate | None = None,
    db: AsyncSession = Depends(get_db),
):
    key = await _get_key_or_404(db, key_id)
    grace = body.grace_period if body else 300
    replacement, raw_key = await rotate_api_key(db, key, grace)
    await db.commit()
    return {
        **api_key_to_dict(replacement),
        "key": raw_key,
        "previous_key": api_key_to_dict(key),
        "grace_period": grace,
        "warning": "Store this key securely. It will not be shown again.",
    }
