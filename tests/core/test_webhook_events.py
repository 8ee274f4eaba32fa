"""Webhook Events — payload envelope, headers, backoff and per-subscription options."""

from datetime import datetime, timezone

from app.core.domain_types import WebhookEventType
from app.core.webhook_events import (
    RESPONSE_BODY_LIMIT, build_headers, build_payload, describe_events,
    resolve_options, retry_delay_ms, sample_data, truncate_body,
)


def test_payload_envelope():
    ts = datetime(2026, 10, 18, tzinfo=timezone.utc)
    payload = build_payload("user_registered", {"user_id": "u1"}, ts, "evt-1")
    assert payload == {
        "event_type": "user_registered",
        "event_id": "evt-1",
        "timestamp": ts.isoformat(),
        "data": {"user_id": "u1"},
        "metadata": {"source": "api", "version": "1.0"},
    }


def test_payload_generates_event_id():
    ts = datetime(2026, 10, 18, tzinfo=timezone.utc)
    assert build_payload("x", {}, ts)["event_id"]


def test_headers_include_bearer_only_with_secret():
    headers = build_headers("project_created", "wh-1", None)
    assert headers["User-Agent"] == "Cartel-Webhook/1.0"
    assert headers["X-Webhook-Event"] == "project_created"
    assert headers["X-Webhook-Id"] == "wh-1"
    assert "Authorization" not in headers
    assert build_headers("e", "w", "s3cret")["Authorization"] == "Bearer s3cret"


def test_backoff_doubles_and_caps():
    assert retry_delay_ms(1) == 1000
    assert retry_delay_ms(2) == 2000
    assert retry_delay_ms(3) == 4000
    assert retry_delay_ms(10) == 30_000


def test_options_default_from_settings():
    options = resolve_options(None, 10.0, 3)
    assert options.timeout_seconds == 10.0
    assert options.retry_attempts == 3
    assert options.retry_delay_ms is None


def test_options_metadata_overrides():
    options = resolve_options({"timeout": 2500, "retry_attempts": 5, "retry_delay": 100}, 10.0, 3)
    assert options.timeout_seconds == 2.5
    assert options.retry_attempts == 5
    assert options.retry_delay_ms == 100


def test_truncate_body():
    assert truncate_body(None) is None
    assert len(truncate_body("x" * 5000)) == RESPONSE_BODY_LIMIT


def test_sample_data_per_event():
    assert sample_data("application_created")["application_number"] == 999
    assert sample_data("user_registered")["role"] == "authenticated"
    assert "message" in sample_data("practice_session_completed")


def test_describe_events_lists_every_type():
    described = describe_events()
    assert [e["type"] for e in described] == [e.value for e in WebhookEventType]
    assert all(e["description"] for e in described)
