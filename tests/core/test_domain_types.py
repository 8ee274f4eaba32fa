"""Domain Types — identity normalization, masking rules and UTC helpers.

Tests:
    - evm/lens identities lowercase, other platforms untouched
    - Only wallet-like platforms are sensitive (masked in listings)
    - ensure_utc attaches UTC to naive datetimes and converts aware ones
"""

from datetime import datetime, timedelta, timezone

from app.core.domain_types import (
    Platform, Scope, ROOT_KEY_SCOPES, WebhookEventType,
    ensure_utc, is_sensitive_platform, isoformat_or_none, normalize_identity,
)


def test_normalize_lowercases_evm_and_lens():
    assert normalize_identity(Platform.EVM, "0xABCdef") == "0xabcdef"
    assert normalize_identity("lens", "Alice.Lens") == "alice.lens"


def test_normalize_keeps_case_elsewhere():
    assert normalize_identity(Platform.GITHUB, "OctoCat") == "OctoCat"
    assert normalize_identity(Platform.DISCORD, "12345") == "12345"


def test_sensitive_platforms_are_wallet_like():
    assert is_sensitive_platform(Platform.EVM)
    assert is_sensitive_platform("lens")
    assert not is_sensitive_platform(Platform.TELEGRAM)


def test_root_scopes_cover_every_scope():
    assert set(ROOT_KEY_SCOPES) == {s.value for s in Scope}


def test_event_catalogue_has_six_events():
    assert len(WebhookEventType) == 6
    assert WebhookEventType("practice_session_completed")


def test_ensure_utc_attaches_tz_to_naive():
    naive = datetime(2026, 1, 2, 3, 4, 5)
    assert ensure_utc(naive).tzinfo == timezone.utc
    assert ensure_utc(naive).hour == 3


def test_ensure_utc_converts_aware():
    plus_two = datetime(2026, 1, 2, 5, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(plus_two).hour == 3
    assert ensure_utc(None) is None


def test_isoformat_or_none():
    assert isoformat_or_none(None) is None
    assert isoformat_or_none(datetime(2026, 1, 1)) == "2026-01-01T00:00:00+00:00"
