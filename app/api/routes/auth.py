"""Auth Routes — Sign-In with Ethereum, token refresh/revocation and the current user.

Invariants:
    - Every route is rate-limited with the "auth" preset (5 / 15 min per caller)
    - /verify issues tokens only after parse, origin, validity window, nonce and
      signature checks all pass (services/siwe_auth.py)
    - /refresh rotates within the same family; reuse revokes the family and returns 401
    - A user created by /verify fires user_registered in the background
    - /verify refreshes ens_name / ens_avatar from the ENS resolver; a failed lookup
      keeps the stored values, an address without a name clears them

Design Decisions:
    - X-API-Key optional here: browser wallets sign in without a client key and fall
      back to settings.siwe_domain as the only allowed origin
"""

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    AuthContext, rate_limit, require_user, resolve_api_key,
)
from app.config import get_settings
from app.core.domain_types import Platform, WebhookEventType
from app.core.errors import AuthenticationError, ResourceNotFoundError
from app.infrastructure.ens_resolver import get_ens_resolver
from app.infrastructure.database import get_db
from app.schemas.auth import NonceRequest, RefreshRequest, VerifyRequest
from app.schemas.users import user_to_dict
from app.services.identity_service import (
    find_or_create_by_identity, list_identities, load_user,
)
from app.services.siwe_auth import get_nonce_store, verify_siwe
from app.services.token_service import (
    issue_token_pair, revoke_all_user_tokens, rotate_refresh_token,
)
from app.services.webhook_dispatcher import trigger_webhook_event

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/auth", tags=["auth"],
    dependencies=[Depends(rate_limit("auth"))],
)


@router.post("/nonce")
async def create_nonce(body: NonceRequest):
    """Issue a SIWE nonce for the address (valid 5 minutes)."""
    nonce = get_nonce_store().issue(body.address)
    return {"nonce": nonce}


@router.post("/verify")
async def verify(
    body: VerifyRequest,
    background_tasks: BackgroundTasks,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    db: AsyncSession = Depends(get_db),
):
    """Verify a signed SIWE message and sign the wallet in."""
    client = None
    if x_api_key:
        client = await resolve_api_key(db, x_api_key)
        if client is None:
            raise AuthenticationError("Invalid API key", "INVALID_API_KEY")

    if client is not None and client.key_id is not None:
        allowed_origins = client.allowed_origins or []
    else:
        allowed_origins = [get_settings().siwe_domain]

    message = verify_siwe(
        body.message,
        body.signature,
        allowed_origins,
        get_nonce_store(),
        require_stored_nonce=client is None,
    )

    address = message.address.lower()
    user, created = await find_or_create_by_identity(
        db, Platform.EVM, address, verified=True,
    )
    profile = await get_ens_resolver().resolve(address)
    if profile is not None:
        user.ens_name = profile.name
        user.ens_avatar = profile.avatar
    client_id = str(client.key_id) if client and client.key_id else None
    tokens = await issue_token_pair(db, user.id, client_id)
    await db.commit()

    if created:
        background_tasks.add_task(
            trigger_webhook_event,
            WebhookEventType.USER_REGISTERED.value,
            {
                "user_id": str(user.id),
                "address": address,
                "ens_name": user.ens_name,
                "role": user.role,
            },
        )
    logger.info(
        "SIWE sign-in", extra={"user_id": str(user.id)},
    )
    return {
        **tokens.to_response(),
        "user_id": str(user.id),
        "address": address,
        "ens_name": user.ens_name,
        "client_name": client.client_name if client else None,
    }


@router.post("/refresh")
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    """Exchange a refresh token for a new token pair (same family)."""
    tokens = await rotate_refresh_token(db, body.refresh_token)
    # Commit even on failure: reuse detection revokes the family
    await db.commit()
    if tokens is None:
        raise AuthenticationError(
            "Invalid or expired refresh token", "INVALID_REFRESH_TOKEN",
        )
    return tokens.to_response()


@router.post("/revoke")
async def revoke(
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """Revoke every refresh token of the caller."""
    revoked = await revoke_all_user_tokens(db, user.user_id)
    await db.commit()
    return {"message": "All refresh tokens revoked", "revoked_count": revoked}


@router.get("/me")
async def me(
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    """The signed-in user with identities."""
    record = await load_user(db, user.user_id)
    if record is None:
        raise ResourceNotFoundError("User", str(user.user_id))
    identities = await list_identities(db, user.user_id)
    return {
        "user_id": str(record.id),
        "address": record.address,
        "user": user_to_dict(record, identities),
    }
