"""Webhook Dispatcher — fans domain events out to subscribers and records every delivery.

Invariants:
    - trigger() selects only ACTIVE subscriptions whose events include the event type
    - Each subscription is delivered concurrently (asyncio.gather), each on its own session
    - A delivery row is inserted before the first attempt (attempts=1) and updated after each
    - Between attempts: next_retry_at is recorded, then we sleep retry_delay or capped backoff
    - Final failure sets failed_at and clears next_retry_at; success sets delivered_at
    - retry_failed_deliveries() resends rows with next_retry_at <= now, attempts < max
      and an active subscription, one attempt per row per pass

Design Decisions:
    - session_scope + client + sleep injected: tests drive the full flow with
      httpx.MockTransport and a no-op sleep (ADR: no patching of module globals)
    - One failing subscriber never affects another: gather(return_exceptions=True)
    - Retries continue the existing delivery row instead of inserting a new one, so a
      row leaves the retry queue once it succeeds or exhausts its attempts
    - get_dispatcher() opens sessions with db_manager.user_session and the admin role:
      delivery reads subscriptions of every owner, so it must pass their RLS policies
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable

from sqlalchemy import select

from app.config import Settings, get_settings
from app.core.domain_types import UserRole, WebhookEventType, utc_now
from app.core.errors import WebhookDeliveryError
from app.core.webhook_events import (
    DeliveryOptions, build_headers, build_payload, resolve_options,
    retry_delay_ms, sample_data,
)
from app.db.types import array_contains_all
from app.infrastructure.webhook_client import WebhookClient
from app.models.webhook import WebhookDelivery, WebhookSubscription

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PingResult:
    success: bool
    status_code: int | None = None
    error: str | None = None


@dataclass(frozen=True)
class DeliveryOutcome:
    delivery_id: uuid.UUID
    success: bool
    attempts: int


class WebhookDispatcher:
    """Delivers webhook payloads with retry and persistence."""

    def __init__(
        self,
        session_scope: Callable[[], Any],
        client: WebhookClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        settings: Settings | None = None,
    ):
        self._session_scope = session_scope
        self._client = client or WebhookClient()
        self._sleep = sleep
        self._settings = settings or get_settings()

    def _options(self, subscription: WebhookSubscription) -> DeliveryOptions:
        return resolve_options(
            subscription.metadata_,
            self._settings.webhook_timeout_seconds,
            self._settings.webhook_retry_attempts,
        )

    def _delay_ms(self, options: DeliveryOptions, attempt: int) -> int:
        if options.retry_delay_ms:
            return options.retry_delay_ms
        return retry_delay_ms(
            attempt,
            self._settings.webhook_base_delay_ms,
            self._settings.webhook_max_delay_ms,
        )

    async def _send(
        self, subscription: WebhookSubscription, payload: dict, timeout: float,
    ):
        headers = build_headers(
            payload["event_type"], str(subscription.id), subscription.secret,
        )
        return await self._client.post(subscription.url, payload, headers, timeout)

    # ─── Fan-out ─────────────────────────────────────────────────

    async def trigger(
        self, event_type: str, data: Any, event_id: str | None = None,
    ) -> list[DeliveryOutcome]:
        """Deliver an event to every matching subscription."""
        async with self._session_scope() as db:
            dialect = db.get_bind().dialect.name
            result = await db.execute(
                select(WebhookSubscription).where(
                    WebhookSubscription.is_active.is_(True),
                    array_contains_all(WebhookSubscription.events, [event_type], dialect),
                ),
            )
            subscriptions = list(result.scalars().all())

        if not subscriptions:
            logger.debug(f"No webhook subscriptions for {event_type}")
            return []

        payload = build_payload(event_type, data, utc_now(), event_id)
        logger.info(
            f"Dispatching {event_type} to {len(subscriptions)} subscription(s)",
            extra={"event_type": event_type},
        )
        results = await asyncio.gather(
            *(self.deliver(s, payload) for s in subscriptions),
            return_exceptions=True,
        )
        outcomes = []
        for subscription, outcome in zip(subscriptions, results):
            if isinstance(outcome, BaseException):
                logger.error(
                    f"Webhook dispatch crashed for {subscription.id}: {outcome}",
                    extra={"webhook_id": str(subscription.id), "event_type": event_type},
                )
                continue
            outcomes.append(outcome)
        return outcomes

    # ─── Single delivery with retries ────────────────────────────

    async def deliver(
        self, subscription: WebhookSubscription, payload: dict,
    ) -> DeliveryOutcome:
        options = self._options(subscription)
        log_extra = {
            "webhook_id": str(subscription.id),
            "event_type": payload["event_type"],
        }

        async with self._session_scope() as db:
            delivery = WebhookDelivery(
                webhook_id=subscription.id,
                event_type=payload["event_type"],
                event_id=payload["event_id"],
                payload=payload,
                url=subscription.url,
                attempts=1,
            )
            db.add(delivery)
            await db.commit()

            for attempt in range(1, options.retry_attempts + 1):
                try:
                    response = await self._send(
                        subscription, payload, options.timeout_seconds,
                    )
                except WebhookDeliveryError as e:
                    logger.warning(
                        f"Webhook delivery failed (attempt {attempt}/{options.retry_attempts}): {e.message}",
                        extra={**log_extra, "attempt": attempt},
                    )
                    delivery.attempts = attempt
                    delivery.status_code = e.status_code
                    delivery.response_body = e.response_body
                    delivery.error = e.message
                    if attempt == options.retry_attempts:
                        delivery.failed_at = utc_now()
                        delivery.next_retry_at = None
                        await db.commit()
                        return DeliveryOutcome(delivery.id, False, attempt)
                    delay = self._delay_ms(options, attempt)
                    delivery.next_retry_at = utc_now() + timedelta(milliseconds=delay)
                    await db.commit()
                    await self._sleep(delay / 1000)
                    continue

                delivery.attempts = attempt
                delivery.status_code = response.status_code
                delivery.response_body = response.body
                delivery.delivered_at = utc_now()
                delivery.next_retry_at = None
                delivery.error = None
                await db.commit()
                logger.info(
                    f"Webhook delivered on attempt {attempt}",
                    extra={**log_extra, "attempt": attempt},
                )
                return DeliveryOutcome(delivery.id, True, attempt)

        # retry_attempts is always >= 1, the loop returns
        raise RuntimeError("unreachable")

    # ─── Periodic retry ──────────────────────────────────────────

    async def retry_failed_deliveries(self) -> int:
        """One extra attempt for every delivery whose retry time has come."""
        max_attempts = self._settings.webhook_max_retry_attempts
        async with self._session_scope() as db:
            result = await db.execute(
                select(WebhookDelivery, WebhookSubscription)
                .join(WebhookSubscription, WebhookDelivery.webhook_id == WebhookSubscription.id)
                .where(
                    WebhookDelivery.next_retry_at.is_not(None),
                    WebhookDelivery.next_retry_at <= utc_now(),
                    WebhookDelivery.attempts < max_attempts,
                    WebhookSubscription.is_active.is_(True),
                ),
            )
            due = list(result.all())
            if due:
                logger.info(f"Retrying {len(due)} webhook deliveries")

            for delivery, subscription in due:
                options = self._options(subscription)
                attempt = delivery.attempts + 1
                try:
                    response = await self._send(
                        subscription, delivery.payload, options.timeout_seconds,
                    )
                except WebhookDeliveryError as e:
                    delivery.attempts = attempt
                    delivery.status_code = e.status_code
                    delivery.error = e.message
                    if attempt >= max_attempts:
                        delivery.failed_at = utc_now()
                        delivery.next_retry_at = None
                    else:
                        delivery.next_retry_at = utc_now() + timedelta(
                            milliseconds=self._delay_ms(options, attempt),
                        )
                    await db.commit()
                    continue
                delivery.attempts = attempt
                delivery.status_code = response.status_code
                delivery.response_body = response.body
                delivery.delivered_at = utc_now()
                delivery.next_retry_at = None
                delivery.error = None
                await db.commit()
            return len(due)

    # ─── Test ping ───────────────────────────────────────────────

    async def test_webhook(
        self,
        subscription: WebhookSubscription,
        event_type: str = WebhookEventType.APPLICATION_CREATED.value,
        data: Any = None,
    ) -> PingResult:
        """Single unrecorded request with sample data."""
        payload = build_payload(
            event_type,
            data if data is not None else sample_data(event_type),
            utc_now(),
            f"test-{uuid.uuid4()}",
        )
        options = self._options(subscription)
        try:
            response = await self._send(subscription, payload, options.timeout_seconds)
        except WebhookDeliveryError as e:
            return PingResult(success=False, status_code=e.status_code, error=e.message)
        return PingResult(success=True, status_code=response.status_code)


# ─── Module-level wiring ─────────────────────────────────────────

_dispatcher: WebhookDispatcher | None = None


def get_dispatcher() -> WebhookDispatcher:
    """Dispatcher bound to the application's db_manager."""
    global _dispatcher
    if _dispatcher is None:
        from app.infrastructure import database

        def session_scope():
            if not database.db_manager:
                raise RuntimeError("Database not initialized")
            return database.db_manager.user_session(None, UserRole.ADMIN.value)

        _dispatcher = WebhookDispatcher(session_scope)
    return _dispatcher


def set_dispatcher(dispatcher: WebhookDispatcher | None) -> None:
    global _dispatcher
    _dispatcher = dispatcher


async def trigger_webhook_event(event_type: str, data: Any) -> None:
    """BackgroundTasks entry point: failures are logged, never raised to the client."""
    try:
        await get_dispatcher().trigger(event_type, data)
    except Exception as e:
        logger.error(
            f"Webhook trigger failed for {event_type}: {e}",
            exc_info=True, extra={"event_type": event_type},
        )


async def run_retry_loop(interval_seconds: float) -> None:
    """Lifespan task: retry due deliveries every interval until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await get_dispatcher().retry_failed_deliveries()
        except Exception as e:
            logger.error(f"Webhook retry pass failed: {e}", exc_info=True)
