"""Identity Lookup Routes — resolve platform identities to users, and provision users by identity.

Invariants:
    - Lookups normalize evm/lens identities before comparing
    - POST /id is idempotent: an existing mapping returns 200 with created=false,
      a new one returns 201 with created=true
    - GET /identities/{user_id} lists primary first; no identities -> 404
    - Lookups use the "api" rate-limit preset, POST /id the "write" preset
"""

import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_rls_db, rate_limit, require_api_key
from app.core.domain_types import Platform, WebhookEventType
from app.core.errors import ResourceNotFoundError
from app.schemas.users import (
    IdentityLookupCreate, identity_lookup_to_dict, identity_to_dict,
)
from app.services.identity_service import (
    find_or_create_by_identity, get_identity, list_identities,
)
from app.services.webhook_dispatcher import trigger_webhook_event

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/users", tags=["identities"],
    dependencies=[Depends(require_api_key)],
)


async def _lookup(db: AsyncSession, platform: Platform, identity: str) -> dict:
    row = await get_identity(db, platform, identity)
    if row is None:
        raise ResourceNotFoundError("User", f"{platform.value}:{identity}")
    return identity_lookup_to_dict(row)


@router.get("/id/by-evm/{address}", dependencies=[Depends(rate_limit("api"))])
async def by_evm(address: str, db: AsyncSession = Depends(get_rls_db)):
    return await _lookup(db, Platform.EVM, address)


@router.get("/id/by-lens/{handle}", dependencies=[Depends(rate_limit("api"))])
async def by_lens(handle: str, db: AsyncSession = Depends(get_rls_db)):
    return await _lookup(db, Platform.LENS, handle)


@router.get("/id/by-farcaster/{fid}", dependencies=[Depends(rate_limit("api"))])
async def by_farcaster(fid: str, db: AsyncSession = Depends(get_rls_db)):
    return await _lookup(db, Platform.FARCASTER, fid)


@router.get("/id/by-discord/{discord_id}", dependencies=[Depends(rate_limit("api"))])
async def by_discord(discord_id: str, db: AsyncSession = Depends(get_rls_db)):
    return await _lookup(db, Platform.DISCORD, discord_id)


@router.get("/id/by-telegram/{telegram_id}", dependencies=[Depends(rate_limit("api"))])
async def by_telegram(telegram_id: str, db: AsyncSession = Depends(get_rls_db)):
    return await _lookup(db, Platform.TELEGRAM, telegram_id)


@router.get("/id/by-github/{username}", dependencies=[Depends(rate_limit("api"))])
async def by_github(username: str, db: AsyncSession = Depends(get_rls_db)):
    return await _lookup(db, Platform.GITHUB, username)


@router.post("/id", dependencies=[Depends(rate_limit("write"))])
async def get_or_create_by_identity(
    body: IdentityLookupCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_rls_db),
):
    """Return the user behind an identity, creating user + primary identity if unknown."""
    user, created = await find_or_create_by_identity(
        db, body.platform, body.identity, body.metadata,
    )
    await db.commit()
    row = await get_identity(db, body.platform, body.identity)
    if created:
        response.status_code = status.HTTP_201_CREATED
        background_tasks.add_task(
            trigger_webhook_event,
            WebhookEventType.USER_REGISTERED.value,
            {"user_id": str(user.id), "platform": body.platform.value, "role": user.role},
        )
    return {**identity_lookup_to_dict(row), "created": created}


@router.get("/identities/{user_id}", dependencies=[Depends(rate_limit("api"))])
async def get_user_identities(
    user_id: UUID, db: AsyncSession = Depends(get_rls_db),
):
    identities = await list_identities(db, user_id)
    if not identities:
        raise ResourceNotFoundError("Identities for user", str(user_id))
    return {
        "user_id": str(user_id),
        "identities": [identity_to_dict(i) for i in identities],
    }
