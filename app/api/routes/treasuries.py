"""Treasury Routes — on-chain treasuries and the projects they fund.

Invariants:
    - Listings show active treasuries only
    - Creating/updating treasuries is admin only; a duplicate address -> 400
    - Linking requires the project owner (or an admin); a link exists at most once
    - A link request resolves its treasury by id, or finds/creates it by address + name
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    AuthContext, get_current_user, get_rls_db, rate_limit, require_admin,
    require_api_key, require_user,
)
from app.core.errors import BusinessRuleError, ResourceNotFoundError
from app.db.types import array_contains_all, dialect_name
from app.models.project import Project
from app.models.treasury import ProjectTreasury, Treasury
from app.schemas.treasuries import (
    ProjectTreasuryLink, TreasuryCreate, TreasuryUpdate, link_to_dict, treasury_to_dict,
)

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/treasuries", tags=["treasuries"],
    dependencies=[Depends(require_api_key)],
)


async def _get_treasury_or_404(db: AsyncSession, treasury_id: UUID) -> Treasury:
    treasury = await db.get(Treasury, treasury_id)
    if treasury is None:
        raise ResourceNotFoundError("Treasury", str(treasury_id))
    return treasury


async def _owned_project_or_404(
    db: AsyncSession, project_id: UUID, user: AuthContext,
) -> Project:
    project = await db.get(Project, project_id)
    if project is None or not (user.is_admin or project.user_id == user.user_id):
        raise ResourceNotFoundError("Project", str(project_id))
    return project


async def _address_taken(
    db: AsyncSession, address: str, exclude_id: UUID | None = None,
) -> bool:
    query = select(Treasury.id).where(Treasury.address == address)
    if exclude_id is not None:
        query = query.where(Treasury.id != exclude_id)
    return (await db.execute(query)).first() is not None


@router.get("")
async def list_treasuries(
    chain_id: int | None = Query(None, ge=1),
    type: str | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_rls_db),
):
    query = select(Treasury).where(Treasury.is_active.is_(True))
    if chain_id is not None:
        query = query.where(
            array_contains_all(Treasury.chain_ids, [chain_id], dialect_name(db)),
        )
    if type:
        query = query.where(Treasury.type == type)
    result = await db.execute(
        query.order_by(Treasury.created_at.desc(), Treasury.id).limit(limit).offset(offset),
    )
    return [treasury_to_dict(t) for t in result.scalars().all()]


@router.get("/projects/{project_id}")
async def list_project_treasuries(
    project_id: UUID,
    user: AuthContext | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_db),
):
    project = await db.get(Project, project_id)
    visible = project is not None and (
        project.is_public
        or (user is not None and (user.is_admin or project.user_id == user.user_id))
    )
    if not visible:
        raise ResourceNotFoundError("Project", str(project_id))
    result = await db.execute(
        select(Treasury, ProjectTreasury)
        .join(ProjectTreasury, ProjectTreasury.treasury_id == Treasury.id)
        .where(ProjectTreasury.project_id == project_id)
        .order_by(ProjectTreasury.created_at),
    )
    return [
        {**treasury_to_dict(treasury), "link": link_to_dict(link)}
        for treasury, link in result.all()
    ]


@router.post(
    "/projects/{project_id}", status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
async def link_treasury(
    project_id: UUID,
    body: ProjectTreasuryLink,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    """Attach a treasury to a project, creating the treasury from address + name if new."""
    await _owned_project_or_404(db, project_id, user)

    if body.treasury_id is not None:
        treasury = await _get_treasury_or_404(db, body.treasury_id)
    elif body.address and body.name:
        result = await db.execute(select(Treasury).where(Treasury.address == body.address))
        treasury = result.scalar_one_or_none()
        if treasury is None:
            treasury = Treasury(
                address=body.address, name=body.name, chain_ids=body.chain_ids,
            )
            db.add(treasury)
            await db.flush()
    else:
        raise BusinessRuleError(
            "Treasury ID or address/name required", "TREASURY_REFERENCE_REQUIRED",
        )

    if await db.get(ProjectTreasury, (project_id, treasury.id)) is not None:
        raise BusinessRuleError(
            "Treasury already linked to this project", "TREASURY_ALREADY_LINKED",
        )
    link = ProjectTreasury(
        project_id=project_id,
        treasury_id=treasury.id,
        added_by=user.user_id,
        role=body.role,
        description=body.description,
    )
    db.add(link)
    await db.commit()
    return {"treasury": treasury_to_dict(treasury), "link": link_to_dict(link)}


@router.delete(
    "/projects/{project_id}/{treasury_id}", status_code=status.HTTP_204_NO_CONTENT,
)
async def unlink_treasury(
    project_id: UUID,
    treasury_id: UUID,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    await _owned_project_or_404(db, project_id, user)
    link = await db.get(ProjectTreasury, (project_id, treasury_id))
    if link is None:
        raise ResourceNotFoundError("Treasury link", f"{project_id}/{treasury_id}")
    await db.delete(link)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{treasury_id}")
async def get_treasury(
    treasury_id: UUID,
    user: AuthContext | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_db),
):
    treasury = await _get_treasury_or_404(db, treasury_id)
    query = (
        select(Project, ProjectTreasury)
        .join(ProjectTreasury, ProjectTreasury.project_id == Project.id)
        .where(ProjectTreasury.treasury_id == treasury_id)
    )
    if user is None:
        query = query.where(Project.is_public.is_(True))
    elif not user.is_admin:
        query = query.where(
            or_(Project.is_public.is_(True), Project.user_id == user.user_id),
        )
    result = await db.execute(query.order_by(ProjectTreasury.created_at))
    return {
        **treasury_to_dict(treasury),
        "projects": [
            {
                "id": str(project.id),
                "title": project.title,
                "role": link.role,
                "description": link.description,
            }
            for project, link in result.all()
        ],
    }


@router.post(
    "", status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin), Depends(rate_limit("write"))],
)
async def create_treasury(body: TreasuryCreate, db: AsyncSession = Depends(get_rls_db)):
    if await _address_taken(db, body.address):
        raise BusinessRuleError(
            "Treasury with this address already exists", "TREASURY_EXISTS",
        )
    data = body.model_dump()
    treasury = Treasury(metadata_=data.pop("metadata"), **data)
    db.add(treasury)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise BusinessRuleError(
            "Treasury with this address already exists", "TREASURY_EXISTS",
        )
    logger.info(f"Treasury created: {treasury.address}")
    return treasury_to_dict(treasury)


@router.patch(
    "/{treasury_id}",
    dependencies=[Depends(require_admin), Depends(rate_limit("write"))],
)
async def update_treasury(
    treasury_id: UUID, body: TreasuryUpdate, db: AsyncSession = Depends(get_rls_db),
):
    treasury = await _get_treasury_or_404(db, treasury_id)
    changes = body.model_dump(exclude_unset=True)
    if changes.get("address") and await _address_taken(db, changes["address"], treasury_id):
        raise BusinessRuleError(
            "Treasury with this address already exists", "TREASURY_EXISTS",
        )
    if "metadata" in changes:
        treasury.metadata_ = changes.pop("metadata")
    for field, value in changes.items():
        setattr(treasury, field, value)
    await db.commit()
    return treasury_to_dict(treasury)
