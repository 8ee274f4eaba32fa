"""Webhook HTTP Client — POSTs JSON payloads to subscriber endpoints with timeout and error mapping.

Invariants:
    - 2xx -> WebhookResponse; anything else raises WebhookDeliveryError (core/errors.py)
    - Timeouts and connection failures raise WebhookDeliveryError with status_code=None
    - Response bodies are truncated before leaving this module
    - No retry here: retry/backoff policy belongs to the dispatcher

Design Decisions:
    - httpx.AsyncClient per request: deliveries are infrequent, no pool lifecycle to manage
    - Injectable transport: tests swap in httpx.MockTransport instead of patching
"""

import logging
from dataclasses import dataclass

import httpx

from app.core.errors import WebhookDeliveryError
from app.core.webhook_events import truncate_body

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body: str | None


class WebhookClient:
    """Sends a single webhook request."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport

    async def post(
        self, url: str, payload: dict, headers: dict[str, str], timeout: float,
    ) -> WebhookResponse:
        try:
            async with httpx.AsyncClient(
                timeout=timeout, transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise WebhookDeliveryError(f"Request timed out after {timeout}s") from e
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(str(e) or type(e).__name__) from e

        body = truncate_body(response.text)
        if not response.is_success:
            raise WebhookDeliveryError(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                status_code=response.status_code,
                response_body=body,
            )
        return WebhookResponse(status_code=response.status_code, body=body)
