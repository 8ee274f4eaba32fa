"""Webhook Schemas — subscriptions, delivery options and test pings.

Invariants:
    - events is a non-empty list of WebhookEventType values
    - metadata.timeout and metadata.retry_delay are milliseconds
    - The subscription secret is write-only: responses expose has_secret instead
"""

from pydantic import BaseModel, Field

from app.core.domain_types import WebhookEventType, isoformat_or_none
from app.models.webhook import WebhookDelivery, WebhookSubscription

_URL_PATTERN = r"^https?://\S+$"


class WebhookOptions(BaseModel):
    timeout: int | None = Field(None, ge=100, le=60_000)
    retry_attempts: int | None = Field(None, ge=1, le=5)
    retry_delay: int | None = Field(None, ge=0, le=300_000)


class WebhookCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    url: str = Field(pattern=_URL_PATTERN, max_length=2000)
    secret: str | None = Field(None, max_length=500)
    events: list[WebhookEventType] = Field(min_length=1)
    metadata: WebhookOptions | None = None


class WebhookUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    url: str | None = Field(None, pattern=_URL_PATTERN, max_length=2000)
    secret: str | None = Field(None, max_length=500)
    events: list[WebhookEventType] | None = Field(None, min_length=1)
    is_active: bool | None = None
    metadata: WebhookOptions | None = None


class WebhookTest(BaseModel):
    event_type: WebhookEventType = WebhookEventType.APPLICATION_CREATED
    test_data: dict | None = None


def webhook_to_dict(subscription: WebhookSubscription) -> dict:
    return {
        "id": str(subscription.id),
        "name": subscription.name,
        "url": subscription.url,
        "has_secret": bool(subscription.secret),
        "events": list(subscription.events or []),
        "is_active": subscription.is_active,
        "metadata": subscription.metadata_,
        "created_by": str(subscription.created_by),
        "created_at": isoformat_or_none(subscription.created_at),
        "updated_at": isoformat_or_none(subscription.updated_at),
    }


def delivery_to_dict(delivery: WebhookDelivery) -> dict:
    return {
        "id": str(delivery.id),
        "webhook_id": str(delivery.webhook_id),
        "event_type": delivery.event_type,
        "event_id": delivery.event_id,
        "payload": delivery.payload,
        "url": delivery.url,
        "status_code": delivery.status_code,
        "response_body": delivery.response_body,
        "attempts": delivery.attempts,
        "delivered_at": isoformat_or_none(delivery.delivered_at),
        "failed_at": isoformat_or_none(delivery.failed_at),
        "next_retry_at": isoformat_or_none(delivery.next_retry_at),
        "error": delivery.error,
        "created_at": isoformat_or_none(delivery.created_at),
    }
