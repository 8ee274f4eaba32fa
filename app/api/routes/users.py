"""User Routes — member directory and single-user lookup.

Invariants:
    - Listing requires a member or admin JWT (anonymous -> 401, authenticated -> 403)
    - evm/lens identities (and wallet addresses) are masked in listings
    - Responses: {users, total, limit, offset}
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    AuthContext, get_rls_db, rate_limit, require_api_key, require_member,
)
from app.core.domain_types import UserRole
from app.core.errors import ResourceNotFoundError
from app.models.user import User
from app.schemas.users import user_to_dict
from app.services.identity_service import list_identities

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/users", tags=["users"],
    dependencies=[Depends(require_api_key), Depends(rate_limit("read"))],
)


async def _list_users(
    db: AsyncSession,
    roles: list[str] | None,
    limit: int,
    offset: int,
    include_identities: bool,
) -> dict:
    query = select(User)
    count_query = select(func.count()).select_from(User)
    if roles:
        query = query.where(User.role.in_(roles))
        count_query = count_query.where(User.role.in_(roles))
    query = query.order_by(User.created_at.desc(), User.id).limit(limit).offset(offset)

    total = (await db.execute(count_query)).scalar_one()
    users = (await db.execute(query)).scalars().all()
    return {
        "users": [
            user_to_dict(
                u, list(u.identities) if include_identities else None, mask=True,
            )
            for u in users
        ],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@router.get("")
async def list_users(
    role: UserRole | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    include_identities: bool = Query(False),
    _: AuthContext = Depends(require_member),
    db: AsyncSession = Depends(get_rls_db),
):
    """List users (members and admins only)."""
    return await _list_users(
        db, [role.value] if role else None, limit, offset, include_identities,
    )


@router.get("/members")
async def list_members(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    include_identities: bool = Query(False),
    _: AuthContext = Depends(require_member),
    db: AsyncSession = Depends(get_rls_db),
):
    """Users holding the member or admin role."""
    return await _list_users(
        db,
        [UserRole.MEMBER.value, UserRole.ADMIN.value],
        limit, offset, include_identities,
    )


@router.get("/{user_id}")
async def get_user(user_id: UUID, db: AsyncSession = Depends(get_rls_db)):
    """A single user with identities."""
    user = await db.get(User, user_id)
    if user is None:
        raise ResourceNotFoundError("User", str(user_id))
    return user_to_dict(user, await list_identities(db, user_id))
