"""Webhook Routes — manage subscriptions, send test pings, inspect delivery history.

Invariants:
    - JWT required; every query is scoped to created_by = caller (others' hooks -> 404)
    - The secret is never returned, only has_secret
    - Delivery status filter: success = delivered_at set, failed = failed_at set,
      pending = next_retry_at set
    - Test pings are not recorded as deliveries
"""

import logging
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import (
    AuthContext, get_rls_db, rate_limit, require_api_key, require_user,
)
from app.core.webhook_events import describe_events
from app.core.errors import ResourceNotFoundError
from app.db.types import array_overlaps, dialect_name
from app.models.webhook import WebhookDelivery, WebhookSubscription
from app.schemas.webhooks import (
    WebhookCreate, WebhookTest, WebhookUpdate, delivery_to_dict, webhook_to_dict,
)
from app.services.webhook_dispatcher import get_dispatcher

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/webhooks", tags=["webhooks"],
    dependencies=[Depends(require_api_key)],
)


async def _owned_or_404(
    db: AsyncSession, webhook_id: UUID, user: AuthContext,
) -> WebhookSubscription:
    subscription = await db.get(WebhookSubscription, webhook_id)
    if subscription is None or subscription.created_by != user.user_id:
        raise ResourceNotFoundError("Webhook", str(webhook_id))
    return subscription


@router.get("/events")
async def list_event_types():
    return {"events": describe_events()}


@router.post(
    "", status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
async def create_webhook(
    body: WebhookCreate,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    subscription = WebhookSubscription(
        name=body.name,
        url=body.url,
        secret=body.secret,
        events=[e.value for e in body.events],
        metadata_=body.metadata.model_dump(exclude_none=True) if body.metadata else None,
        created_by=user.user_id,
    )
    db.add(subscription)
    await db.commit()
    logger.info(
        f"Webhook created: {subscription.name}", extra={"user_id": str(user.user_id)},
    )
    return webhook_to_dict(subscription)


@router.get("")
async def list_webhooks(
    events: str | None = Query(None, description="Comma-separated; any may match"),
    active: Literal["true", "false"] | None = Query(None),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    query = select(WebhookSubscription).where(
        WebhookSubscription.created_by == user.user_id,
    )
    if events:
        wanted = [e.strip() for e in events.split(",") if e.strip()]
        if wanted:
            query = query.where(
                array_overlaps(WebhookSubscription.events, wanted, dialect_name(db)),
            )
    if active is not None:
        query = query.where(WebhookSubscription.is_active.is_(active == "true"))
    result = await db.execute(
        query.order_by(WebhookSubscription.created_at.desc(), WebhookSubscription.id)
        .limit(limit).offset(offset),
    )
    return [webhook_to_dict(s) for s in result.scalars().all()]


@router.get("/{webhook_id}")
async def get_webhook(
    webhook_id: UUID,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    return webhook_to_dict(await _owned_or_404(db, webhook_id, user))


@router.put("/{webhook_id}", dependencies=[Depends(rate_limit("write"))])
async def update_webhook(
    webhook_id: UUID,
    body: WebhookUpdate,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    subscription = await _owned_or_404(db, webhook_id, user)
    changes = body.model_dump(exclude_unset=True)
    if "events" in changes and body.events is not None:
        changes["events"] = [e.value for e in body.events]
    if "metadata" in changes:
        changes.pop("metadata")
        subscription.metadata_ = (
            body.metadata.model_dump(exclude_none=True) if body.metadata else None
        )
    for field, value in changes.items():
        setattr(subscription, field, value)
    await db.commit()
    return webhook_to_dict(subscription)


@router.delete("/{webhook_id}")
async def delete_webhook(
    webhook_id: UUID,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    subscription = await _owned_or_404(db, webhook_id, user)
    await db.execute(
        delete(WebhookDelivery).where(WebhookDelivery.webhook_id == webhook_id),
    )
    await db.delete(subscription)
    await db.commit()
    return {"success": True}


@router.post("/{webhook_id}/test", dependencies=[Depends(rate_limit("write"))])
async def test_webhook(
    webhook_id: UUID,
    body: WebhookTest | None = None,
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    """Send one sample event to the subscriber; nothing is stored."""
    subscription = await _owned_or_404(db, webhook_id, user)
    body = body or WebhookTest()
    result = await get_dispatcher().test_webhook(
        subscription, body.event_type.value, body.test_data,
    )
    return {
        "success": result.success,
        "status_code": result.status_code,
        "error": result.error,
    }


@router.get("/{webhook_id}/deliveries")
async def list_deliveries(
    webhook_id: UUID,
    event_type: str | None = Query(None),
    delivery_status: Literal["success", "failed", "pending"] | None = Query(
        None, alias="status",
    ),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: AuthContext = Depends(require_user),
    db: AsyncSession = Depends(get_rls_db),
):
    await _owned_or_404(db, webhook_id, user)
    query = select(WebhookDelivery).where(WebhookDelivery.webhook_id == webhook_id)
    if event_type:
        query = query.where(WebhookDelivery.event_type == event_type)
    if delivery_status == "success":
        query = query.where(WebhookDelivery.delivered_at.is_not(None))
    elif delivery_status == "failed":
        query = query.where(WebhookDelivery.failed_at.is_not(None))
    elif delivery_status == "pending":
        query = query.where(WebhookDelivery.next_retry_at.is_not(None))
    result = await db.execute(
        query.order_by(WebhookDelivery.created_at.desc(), WebhookDelivery.id)
        .limit(limit).offset(offset),
    )
    return [delivery_to_dict(d) for d in result.scalars().all()]
