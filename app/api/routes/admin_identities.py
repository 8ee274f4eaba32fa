"""Admin Identity Routes — operator tooling to connect, disconnect, promote and merge.

Invariants:
    - Admin only (admin JWT or admin/root API key)
    - Admin connect never reassigns: an identity already linked anywhere -> 400
    - merge-users deletes the source user after moving its data to the target
"""

import logging

from fastapi import APIRouter, Body, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_rls_db, require_admin, require_api_key
from app.schemas.users import (
    AdminConnectRequest, AdminIdentityRequest, MergeUsersRequest, identity_to_dict,
)
from app.services.identity_service import (
    admin_connect_identity, disconnect_identity, merge_users, set_primary_identity,
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/admin/identities", tags=["admin"],
    dependencies=[Depends(require_api_key), Depends(require_admin)],
)


@router.post("/connect", status_code=status.HTTP_201_CREATED)
async def connect(body: AdminConnectRequest, db: AsyncSession = Depends(get_rls_db)):
    row = await admin_connect_identity(
        db, body.user_id, body.platform, body.identity,
        is_primary=body.is_primary, metadata=body.metadata,
    )
    await db.commit()
    logger.info(
        f"Admin connected {body.platform.value} identity",
        extra={"user_id": str(body.user_id)},
    )
    return {
        "message": "Identity connected successfully",
        "identity": identity_to_dict(row),
    }


@router.delete("/disconnect")
async def disconnect(
    body: AdminIdentityRequest = Body(...),
    db: AsyncSession = Depends(get_rls_db),
):
    row = await disconnect_identity(db, None, body.platform, body.identity)
    await db.commit()
    return {
        "message": "Identity disconnected successfully",
        "user_id": str(row.user_id),
    }


@router.put("/set-primary")
async def set_primary(body: AdminIdentityRequest, db: AsyncSession = Depends(get_rls_db)):
    row, changed = await set_primary_identity(db, None, body.platform, body.identity)
    await db.commit()
    return {
        "message": (
            "Primary identity set successfully" if changed
            else "Identity is already primary"
        ),
        "user_id": str(row.user_id),
    }


@router.post("/merge-users")
async def merge(body: MergeUsersRequest, db: AsyncSession = Depends(get_rls_db)):
    result = await merge_users(db, body.source_user_id, body.target_user_id)
    await db.commit()
    return {
        "message": "Users merged successfully",
        "source_user_id": str(result.source_user_id),
        "target_user_id": str(result.target_user_id),
        "merged_identities": result.merged_identities,
        "merged_platforms": result.merged_platforms,
        "moved_sessions": result.moved_sessions,
        "moved_projects": result.moved_projects,
    }
