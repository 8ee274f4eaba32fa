"""Project Routes — community project showcase with tags and visibility.

Invariants:
    - Visibility: public projects for everyone; private ones only for their owner (or admin)
    - Anonymous public=false -> [] (nothing private is ever visible to them)
    - Projects someone cannot see are reported as 404 "not found or access denied",
      never 403, so their existence is not revealed
    - Mutations require a JWT and ownership (or admin)

Design Decisions:
    - Visibility filter applied in the query as well as by RLS policies: SQLite-backed
      runs have no RLS and must behave the same (ADR: portable test DB)
"""

import logging
from collections import Counter
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    AuthContext, get_current_user, get_rls_db, rate_limit, require_api_key,
    require_user,
)
from app.core.domain_types import WebhookEventType
from app.core.errors import CartelError, ErrorCategory, ErrorSeverity
from app.db.types import array_contains_all, dialect_name
from app.models.project import Project
from app.models.treasury import ProjectTreasury
from app.schemas.projects import ProjectCreate, ProjectUpdate, project_to_dict
from app.services.webhook_dispatcher import trigger_webhook_event

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/projects", tags=["projects"],
    dependencies=[Depends(require_api_key)],
)

POPULAR_TAGS_LIMIT = 20


class ProjectNotFoundError(CartelError):
    def __init__(self, project_id: UUID):
        super().__init__(
            "Project not found or access denied", "RESOURCE_NOT_FOUND",
            ErrorCategory.RESOURCE_NOT_FOUND, ErrorSeverity.ERROR, None, 404,
        )
        self.context.resource_id = str(project_id)


def _visible_to(user: AuthContext | None):
    if user is None:
        return Project.is_public.is_(True)
    if user.is_admin:
        return None
    return or_(Project.is_public.is_(True), Project.user_id == user.user_id)


def _can_modify(project: Project, user: AuthContext) -> bool:
    return user.is_admin or project.user_id == user.user_id


async def _get_visible_or_404(
    db: AsyncSession, project_id: UUID, user: AuthContext | None,
) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)
    if not project.is_public and (user is None or not _can_modify(project, user)):
        raise ProjectNotFoundError(project_id)
    return project


@router.get("")
async def list_projects(
    search: str | None = Query(None),
    tags: str | None = Query(None, description="Comma-separated; all must match"),
    user_id: UUID | None = Query(None),
    public: Literal["true", "false", "all"] = Query("true"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthContext | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_db),
):
    if user is None and public == "false":
        return []

    query = select(Project)
    visibility = _visible_to(user)
    if visibility is not None:
        query = query.where(visibility)
    if public == "true":
        query = query.where(Project.is_public.is_(True))
    elif public == "false":
        query = query.where(Project.is_public.is_(False))
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(Project.title.ilike(pattern), Project.description.ilike(pattern)),
        )
    if tags:
        wanted = [t.strip() for t in tags.split(",") if t.strip()]
        if wanted:
            query = query.where(
                array_contains_all(Project.tags, wanted, dialect_name(db)),
            )
    if user_id is not None:
        query = query.where(Project.user_id == user_id)

    result = await db.execute(
        query.order_by(Project.created_at.desc(), Project.id).limit(limit).offset(offset),
    )
    return [project_to_dict(p) for p in result.scalars().all()]


@router.get("/tags/popular")
async def popular_tags(db: AsyncSession = Depends(get_rls_db)):
    """Most used tags across public projects."""
    result = await db.execute(
        select(Project.tags).where(Project.is_public.is_(True)),
    )
    counts: Counter[str] = Counter()
    for tag_list in result.scalars().all():
        counts.update(tag_list or [])
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{"tag": tag, "count": count} for tag, count in ranked[:POPULAR_TAGS_LIMIT]]


@router.get("/user/{owner_id}")
async def list_user_projects(
    owner_id: UUID,
    user: AuthContext | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_db),
):
    query = select(Project).where(Project.user_id == owner_id)
    visibility = _visible_to(user)
    if visibility is not None:
        query = query.where(visibility)
    result = await db.execute(query.order_by(Project.created_at.desc(), Project.id))
    return [project_to_dict(p) for p in result.scalars().all()]


@router.get("/{project_id}")
async def get_project(
    project_id: UUID,
    user: AuthContext | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_rls_db),
):
    return project_to_dict(await _get_visible_or_404(db, project_id, user))


@router.post(
    "", status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
async def create_project(
    body: ProjectCreate,
    background_tasks: BackgroundTasks,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    project = Project(user_id=user.user_id, **body.model_dump())
    db.add(project)
    await db.commit()
    logger.info(f"Project created: {project.title}", extra={"user_id": str(user.user_id)})
    background_tasks.add_task(
        trigger_webhook_event,
        WebhookEventType.PROJECT_CREATED.value,
        {
            "project_id": str(project.id),
            "user_id": str(user.user_id),
            "title": project.title,
            "tags": list(project.tags or []),
            "is_public": project.is_public,
        },
    )
    return project_to_dict(project)


@router.patch("/{project_id}", dependencies=[Depends(rate_limit("write"))])
async def update_project(
    project_id: UUID,
    body: ProjectUpdate,
    background_tasks: BackgroundTasks,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    project = await db.get(Project, project_id)
    if project is None or not _can_modify(project, user):
        raise ProjectNotFoundError(project_id)
    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(project, field, value)
    await db.commit()
    background_tasks.add_task(
        trigger_webhook_event,
        WebhookEventType.PROJECT_UPDATED.value,
        {
            "project_id": str(project.id),
            "user_id": str(project.user_id),
            "changes": sorted(changes),
        },
    )
    return project_to_dict(project)


@router.delete("/{project_id}")
async def delete_project(
    project_id: UUID,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    project = await db.get(Project, project_id)
    if project is None or not _can_modify(project, user):
        raise ProjectNotFoundError(project_id)
    await db.execute(delete(ProjectTreasury).where(ProjectTreasury.project_id == project_id))
    await db.delete(project)
    await db.commit()
    return {"success": True}
