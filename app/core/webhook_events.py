"""Webhook Events — payload envelope, retry schedule and sample data for webhook deliveries.

Invariants:
    - Every payload: {event_type, event_id, timestamp, data, metadata: {source, version}}
    - Backoff doubles from base_ms and is capped at max_ms: base * 2**(attempt-1)
    - A subscription's metadata (timeout/retry_attempts/retry_delay) overrides defaults
    - response bodies stored on deliveries are truncated to RESPONSE_BODY_LIMIT chars

Design Decisions:
    - Pure module: dispatcher (services/) does IO, this decides what and when
      (ADR: functional core, imperative shell)
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import uuid4

from app.core.domain_types import WebhookEventType

PAYLOAD_SOURCE = "api"
PAYLOAD_VERSION = "1.0"
USER_AGENT = "Cartel-Webhook/1.0"
RESPONSE_BODY_LIMIT = 1000


@dataclass(frozen=True)
class DeliveryOptions:
    """Effective per-subscription delivery knobs."""
    timeout_seconds: float
    retry_attempts: int
    retry_delay_ms: int | None


def build_payload(
    event_type: str,
    data: Any,
    timestamp: datetime,
    event_id: str | None = None,
) -> dict:
    return {
        "event_type": event_type,
        "event_id": event_id or str(uuid4()),
        "timestamp": timestamp.isoformat(),
        "data": data,
        "metadata": {"source": PAYLOAD_SOURCE, "version": PAYLOAD_VERSION},
    }


def retry_delay_ms(attempt: int, base_ms: int = 1000, max_ms: int = 30_000) -> int:
    """Delay after the given (1-based) failed attempt."""
    return min(base_ms * 2 ** (attempt - 1), max_ms)


def resolve_options(
    metadata: dict | None,
    default_timeout_seconds: float,
    default_retry_attempts: int,
) -> DeliveryOptions:
    """Merge subscription metadata (timeout in ms) over settings defaults."""
    metadata = metadata or {}
    timeout_ms = metadata.get("timeout")
    attempts = metadata.get("retry_attempts")
    delay = metadata.get("retry_delay")
    return DeliveryOptions(
        timeout_seconds=(
            timeout_ms / 1000 if timeout_ms else default_timeout_seconds
        ),
        retry_attempts=max(1, int(attempts)) if attempts else default_retry_attempts,
        retry_delay_ms=int(delay) if delay else None,
    )


def build_headers(event_type: str, webhook_id: str, secret: str | None) -> dict[str, str]:
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "X-Webhook-Event": event_type,
        "X-Webhook-Id": webhook_id,
    }
    if secret:
        headers["Authorization"] = f"Bearer {secret}"
    return headers


def truncate_body(body: str | None) -> str | None:
    if body is None:
        return None
    return body[:RESPONSE_BODY_LIMIT]


def sample_data(event_type: str) -> dict:
    """Canned data for POST /webhooks/{id}/test."""
    if event_type == WebhookEventType.APPLICATION_CREATED:
        return {
            "application_id": "test-app-id",
            "application_number": 999,
            "wallet_address": "0x1234567890123456789012345678901234567890",
            "ens_name": "test.eth",
            "excitement": "This is a test application for webhook testing",
            "motivation": "Testing webhook functionality",
        }
    if event_type == WebhookEventType.USER_REGISTERED:
        return {
            "user_id": "test-user-id",
            "address": "0x1234567890123456789012345678901234567890",
            "ens_name": "test.eth",
            "role": "authenticated",
        }
    if event_type in (WebhookEventType.PROJECT_CREATED, WebhookEventType.PROJECT_UPDATED):
        return {
            "project_id": "test-project-id",
            "title": "Test Project",
            "description": "A test project for webhook testing",
            "tags": ["test", "webhook"],
        }
    return {"message": f"Test event for {event_type}"}


EVENT_DESCRIPTIONS: dict[str, str] = {
    WebhookEventType.APPLICATION_CREATED.value: "A membership application was submitted",
    WebhookEventType.APPLICATION_STATUS_CHANGED.value: "An application was approved or rejected",
    WebhookEventType.USER_REGISTERED.value: "A new user was created",
    WebhookEventType.PROJECT_CREATED.value: "A project was created",
    WebhookEventType.PROJECT_UPDATED.value: "A project was updated",
    WebhookEventType.PRACTICE_SESSION_COMPLETED.value: "A practice session was stopped",
}


def describe_events() -> list[dict[str, str]]:
    return [
        {"type": event.value, "description": EVENT_DESCRIPTIONS[event.value]}
        for event in WebhookEventType
    ]
