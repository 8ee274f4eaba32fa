"""My Identities Routes — self-service identity management for the signed-in user.

Invariants:
    - All routes require a JWT; the caller can only touch identities they own
    - Connecting an identity owned by someone else reassigns it (and that user's data)
    - The last identity cannot be disconnected
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import AuthContext, get_rls_db, require_api_key, require_user
from app.core.domain_types import Platform
from app.schemas.users import (
    ConnectIdentityRequest, PrimaryIdentityRequest, identity_to_dict,
)
from app.services.identity_service import (
    OAuthTokens, connect_identity, disconnect_identity, list_identities,
    set_primary_identity,
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/users/me/identities", tags=["identities"],
    dependencies=[Depends(require_api_key)],
)


@router.get("")
async def list_my_identities(
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    identities = await list_identities(db, user.user_id)
    return [identity_to_dict(i) for i in identities]


@router.post("/connect", status_code=status.HTTP_201_CREATED)
async def connect(
    body: ConnectIdentityRequest,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    """Connect an identity; takes it over if another user holds it."""
    result = await connect_identity(
        db, user.user_id, body.platform, body.identity,
        metadata=body.metadata,
        verified_at=body.verified_at,
        is_primary=body.is_primary,
        oauth=OAuthTokens(
            access_token=body.oauth_access_token,
            refresh_token=body.oauth_refresh_token,
            expires_at=body.oauth_token_expires_at,
        ),
    )
    await db.commit()
    return {
        "message": (
            "Identity reassigned successfully" if result.reassigned
            else "Identity connected successfully"
        ),
        "identity": identity_to_dict(result.identity),
        "reassigned": result.reassigned,
        "previous_user_id": (
            str(result.previous_user_id) if result.previous_user_id else None
        ),
    }


@router.delete("/{platform}/{identity}")
async def disconnect(
    platform: Platform,
    identity: str,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    await disconnect_identity(db, user.user_id, platform, identity)
    await db.commit()
    return {"message": "Identity disconnected successfully"}


@router.put("/primary")
async def set_primary(
    body: PrimaryIdentityRequest,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    _, changed = await set_primary_identity(
        db, user.user_id, body.platform, body.identity,
    )
    await db.commit()
    if not changed:
        return {"message": "Identity is already primary"}
    return {"message": "Primary identity set successfully"}
