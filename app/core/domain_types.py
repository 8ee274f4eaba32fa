"""Domain Types — enums and small value helpers shared by routes, services and models.

Invariants:
    - All valid states encoded as Enums — no raw string matching in route logic
    - EVM and Lens identities are case-insensitive: normalize_identity lowercases them
    - Timestamps handed to callers are timezone-aware UTC

Design Decisions:
    - str Enums: serialize to JSON without custom encoders, compare equal to DB strings
    - ensure_utc lives here, not in db/: SQLite returns naive datetimes and every
      duration/expiry computation must treat them as UTC (ADR: portable test DB)
"""

from datetime import datetime, timezone
from enum import Enum


# ─── Enums ───────────────────────────────────────────────────────

class UserRole(str, Enum):
    """Application roles — mirrored into app.current_user_role for RLS."""
    AUTHENTICATED = "authenticated"
    MEMBER = "member"
    ADMIN = "admin"


# Roles accepted by the RLS wrapper (PUBLIC is the anonymous fallback).
RLS_ROLES = frozenset({"authenticated", "member", "admin", "public"})
PUBLIC_ROLE = "public"


class Platform(str, Enum):
    """Identity providers a user can link."""
    DISCORD = "discord"
    EVM = "evm"
    LENS = "lens"
    FARCASTER = "farcaster"
    TELEGRAM = "telegram"
    GITHUB = "github"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VoteType(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class Scope(str, Enum):
    """API key scopes. ROOT and ADMIN satisfy every scope check."""
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"
    ROOT = "root"


DEFAULT_KEY_SCOPES = [Scope.READ.value, Scope.WRITE.value]
ROOT_KEY_SCOPES = [s.value for s in Scope]


class WebhookEventType(str, Enum):
    """Domain events that fan out to webhook subscribers."""
    APPLICATION_CREATED = "application_created"
    APPLICATION_STATUS_CHANGED = "application_status_changed"
    USER_REGISTERED = "user_registered"
    PROJECT_CREATED = "project_created"
    PROJECT_UPDATED = "project_updated"
    PRACTICE_SESSION_COMPLETED = "practice_session_completed"


class LogLevel(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


# ─── Value helpers ───────────────────────────────────────────────

MASKED_IDENTITY = "***masked***"
_CASE_INSENSITIVE_PLATFORMS = frozenset({Platform.EVM, Platform.LENS})


def normalize_identity(platform: Platform | str, identity: str) -> str:
    """Lowercase identities on case-insensitive platforms (evm, lens)."""
    if Platform(platform) in _CASE_INSENSITIVE_PLATFORMS:
        return identity.lower()
    return identity


def is_sensitive_platform(platform: Platform | str) -> bool:
    """Wallet-like identities are masked in member listings."""
    return Platform(platform) in _CASE_INSENSITIVE_PLATFORMS


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat_or_none(value: datetime | None) -> str | None:
    value = ensure_utc(value)
    return value.isoformat() if value else None
