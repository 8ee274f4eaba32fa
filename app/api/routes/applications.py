"""Application Routes — membership applications, decisions and community votes.

Invariants:
    - application_number = max(application_number) + 1 (first application gets 1)
    - message_id is unique: a duplicate submission -> 409
    - Status changes set decided_at and fire application_status_changed
    - One vote per (application, voter): voting again replaces the previous vote
"""

import logging
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    AuthContext, get_rls_db, rate_limit, require_api_key, require_user,
)
from app.core.domain_types import (
    ApplicationStatus, VoteType, WebhookEventType, utc_now,
)
from app.core.errors import ConflictError, ResourceNotFoundError
from app.models.application import Application, ApplicationVote
from app.schemas.applications import (
    ApplicationCreate, ApplicationStatusUpdate, VoteCreate,
    application_to_dict, vote_to_dict,
)
from app.services.webhook_dispatcher import trigger_webhook_event

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/users/applications", tags=["applications"],
    dependencies=[Depends(require_api_key)],
)


async def _get_application_or_404(db: AsyncSession, application_id: UUID) -> Application:
    application = await db.get(Application, application_id)
    if application is None:
        raise ResourceNotFoundError("Application", str(application_id))
    return application


@router.post(
    "", status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
async def create_application(
    body: ApplicationCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_rls_db),
):
    """Submit an application; numbered sequentially."""
    current_max = (
        await db.execute(select(func.max(Application.application_number)))
    ).scalar_one_or_none()
    application = Application(
        application_number=(current_max or 0) + 1,
        status=ApplicationStatus.PENDING.value,
        **body.model_dump(),
    )
    db.add(application)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("An application for this message already exists")

    background_tasks.add_task(
        trigger_webhook_event,
        WebhookEventType.APPLICATION_CREATED.value,
        {
            "application_id": str(application.id),
            "application_number": application.application_number,
            "wallet_address": application.wallet_address,
            "ens_name": application.ens_name,
            "excitement": application.excitement,
            "motivation": application.motivation,
        },
    )
    return {
        "id": str(application.id),
        "application_number": application.application_number,
    }


@router.get("/pending")
async def list_pending(db: AsyncSession = Depends(get_rls_db)):
    result = await db.execute(
        select(Application)
        .where(Application.status == ApplicationStatus.PENDING.value)
        .order_by(Application.submitted_at.desc(), Application.application_number.desc()),
    )
    return [application_to_dict(a) for a in result.scalars().all()]


@router.get("/by-message/{message_id}")
async def get_by_message(message_id: str, db: AsyncSession = Depends(get_rls_db)):
    result = await db.execute(
        select(Application).where(Application.message_id == message_id),
    )
    application = result.scalar_one_or_none()
    if application is None:
        raise ResourceNotFoundError("Application", message_id)
    return application_to_dict(application)


@router.get("/by-number/{number}")
async def get_by_number(number: int, db: AsyncSession = Depends(get_rls_db)):
    result = await db.execute(
        select(Application).where(Application.application_number == number),
    )
    application = result.scalar_one_or_none()
    if application is None:
        raise ResourceNotFoundError("Application", str(number))
    return application_to_dict(application)


@router.get("/{application_id}")
async def get_application(application_id: UUID, db: AsyncSession = Depends(get_rls_db)):
    return application_to_dict(await _get_application_or_404(db, application_id))


@router.patch("/{application_id}/status")
async def update_status(
    application_id: UUID,
    body: ApplicationStatusUpdate,
    background_tasks: BackgroundTasks,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    application = await _get_application_or_404(db, application_id)
    previous = application.status
    application.status = body.status
    application.decided_at = utc_now()
    await db.commit()
    logger.info(
        f"Application #{application.application_number} {previous} -> {body.status}",
        extra={"user_id": str(user.user_id)},
    )
    background_tasks.add_task(
        trigger_webhook_event,
        WebhookEventType.APPLICATION_STATUS_CHANGED.value,
        {
            "application_id": str(application.id),
            "application_number": application.application_number,
            "previous_status": previous,
            "status": application.status,
            "decided_by": str(user.user_id),
        },
    )
    return application_to_dict(application)


@router.delete("/{application_id}")
async def delete_application(
    application_id: UUID,
    _: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    application = await _get_application_or_404(db, application_id)
    await db.execute(
        delete(ApplicationVote).where(ApplicationVote.application_id == application_id),
    )
    await db.delete(application)
    await db.commit()
    return {"success": True}


@router.post("/{application_id}/votes", dependencies=[Depends(rate_limit("write"))])
async def cast_vote(
    application_id: UUID, body: VoteCreate, db: AsyncSession = Depends(get_rls_db),
):
    """Record or replace a voter's decision on an application."""
    await _get_application_or_404(db, application_id)
    vote = await db.get(ApplicationVote, (application_id, body.user_id))
    if vote is None:
        vote = ApplicationVote(
            application_id=application_id,
            user_id=body.user_id,
            user_name=body.user_name,
            vote_type=body.vote_type.value,
        )
        db.add(vote)
    else:
        vote.user_name = body.user_name
        vote.vote_type = body.vote_type.value
        vote.created_at = utc_now()
    await db.commit()
    return {"success": True, "vote": vote_to_dict(vote)}


@router.get("/{application_id}/votes")
async def get_votes(application_id: UUID, db: AsyncSession = Depends(get_rls_db)):
    await _get_application_or_404(db, application_id)
    result = await db.execute(
        select(ApplicationVote)
        .where(ApplicationVote.application_id == application_id)
        .order_by(ApplicationVote.created_at),
    )
    votes = result.scalars().all()
    approvals = [vote_to_dict(v) for v in votes if v.vote_type == VoteType.APPROVE.value]
    rejections = [vote_to_dict(v) for v in votes if v.vote_type == VoteType.REJECT.value]
    return {
        "approvals": approvals,
        "rejections": rejections,
        "approval_count": len(approvals),
        "rejection_count": len(rejections),
    }
