"""Identity Service — linking, unlinking and merging external identities across users.

Invariants:
    - (platform, identity) belongs to exactly one user; evm/lens are compared lowercased
    - A user keeps at least one identity through disconnect
    - Removing a primary identity promotes another one of the same user
    - Reassigning an identity migrates the previous owner's practice sessions and projects;
      an owner left without identities is deleted
    - Merging moves identities (as non-primary), sessions, projects and refresh tokens,
      then deletes the source user

Design Decisions:
    - Bulk UPDATE/DELETE statements over collection mutation: User.identities is
      selectin-loaded and goes stale after bulk writes, so callers re-read through
      list_identities()/load_user() (ADR: async forbids implicit lazy refresh)
    - Dependents of a deleted user are removed explicitly, not left to ON DELETE CASCADE:
      SQLite (tests) does not enforce foreign keys by default
    - Functions flush, never commit: the route owns the transaction
    - OAuth tokens given on connect replace the stored ones field by field;
      omitted fields keep their stored value
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_types import Platform, normalize_identity, utc_now
from app.core.errors import BusinessRuleError, ResourceNotFoundError
from app.models.practice_session import PracticeSession
from app.models.project import Project
from app.models.refresh_token import RefreshToken
from app.models.user import User, UserIdentity
from app.models.webhook import WebhookDelivery, WebhookSubscription

logger = logging.getLogger(__name__)


@dataclass
class OAuthTokens:
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None


@dataclass
class ConnectResult:
    identity: UserIdentity
    reassigned: bool = False
    previous_user_id: uuid.UUID | None = None


@dataclass
class MergeResult:
    source_user_id: uuid.UUID
    target_user_id: uuid.UUID
    merged_identities: int
    merged_platforms: list[str]
    moved_sessions: int
    moved_projects: int


# ─── Reads ───────────────────────────────────────────────────────

async def load_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    """Fetch a user with a freshly loaded identities collection."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .execution_options(populate_existing=True),
    )
    return result.scalar_one_or_none()


async def list_identities(db: AsyncSession, user_id: uuid.UUID) -> list[UserIdentity]:
    """Identities of a user, primary first, then oldest first."""
    result = await db.execute(
        select(UserIdentity)
        .where(UserIdentity.user_id == user_id)
        .order_by(UserIdentity.is_primary.desc(), UserIdentity.created_at),
    )
    return list(result.scalars().all())


async def get_identity(
    db: AsyncSession, platform: Platform | str, identity: str,
) -> UserIdentity | None:
    platform = Platform(platform)
    result = await db.execute(
        select(UserIdentity).where(
            UserIdentity.platform == platform.value,
            UserIdentity.identity == normalize_identity(platform, identity),
        ),
    )
    return result.scalar_one_or_none()


async def _count_identities(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(UserIdentity)
        .where(UserIdentity.user_id == user_id),
    )
    return result.scalar_one()


# ─── Creation ────────────────────────────────────────────────────

async def find_or_create_by_identity(
    db: AsyncSession,
    platform: Platform | str,
    identity: str,
    metadata: dict | None = None,
    verified: bool = False,
) -> tuple[User, bool]:
    """Resolve an identity to its user, creating user + primary identity if unknown.

    Returns (user, created).
    """
    platform = Platform(platform)
    normalized = normalize_identity(platform, identity)
    existing = await get_identity(db, platform, normalized)
    if existing is not None:
        user = await db.get(User, existing.user_id)
        if user is not None:
            return user, False

    user = User(
        address=normalized if platform == Platform.EVM else None,
        identities=[
            UserIdentity(
                platform=platform.value,
                identity=normalized,
                is_primary=True,
                metadata_=metadata,
                verified_at=utc_now() if verified else None,
            ),
        ],
    )
    db.add(user)
    await db.flush()
    logger.info(
        f"User created from {platform.value} identity",
        extra={"user_id": str(user.id)},
    )
    return user, True


# ─── Primary handling ────────────────────────────────────────────

async def _unset_primary(db: AsyncSession, user_id: uuid.UUID) -> None:
    await db.execute(
        update(UserIdentity)
        .where(UserIdentity.user_id == user_id, UserIdentity.is_primary.is_(True))
        .values(is_primary=False, updated_at=utc_now()),
    )


async def _promote_any(db: AsyncSession, user_id: uuid.UUID) -> UserIdentity | None:
    remaining = await list_identities(db, user_id)
    if not remaining:
        return None
    promoted = remaining[0]
    promoted.is_primary = True
    await db.flush()
    return promoted


async def set_primary_identity(
    db: AsyncSession, user_id: uuid.UUID | None, platform: Platform | str, identity: str,
) -> tuple[UserIdentity, bool]:
    """Make an identity primary. user_id=None means any owner (admin).

    Returns (identity, changed); changed is False if it already was primary.
    """
    row = await get_identity(db, platform, identity)
    if row is None or (user_id is not None and row.user_id != user_id):
        raise ResourceNotFoundError("Identity", f"{Platform(platform).value}:{identity}")
    if row.is_primary:
        return row, False
    await _unset_primary(db, row.user_id)
    row.is_primary = True
    await db.flush()
    return row, True


# ─── Connect / disconnect ────────────────────────────────────────

def _store_oauth(row: UserIdentity, oauth: OAuthTokens | None) -> None:
    if oauth is None:
        return
    if oauth.access_token:
        row.oauth_access_token = oauth.access_token
    if oauth.refresh_token:
        row.oauth_refresh_token = oauth.refresh_token
    if oauth.expires_at is not None:
        row.oauth_token_expires_at = oauth.expires_at


async def connect_identity(
    db: AsyncSession,
    user_id: uuid.UUID,
    platform: Platform | str,
    identity: str,
    metadata: dict | None = None,
    verified_at: datetime | None = None,
    is_primary: bool = False,
    oauth: OAuthTokens | None = None,
) -> ConnectResult:
    """Self-service connect: create, refresh, or take over an identity."""
    platform = Platform(platform)
    normalized = normalize_identity(platform, identity)
    existing = await get_identity(db, platform, normalized)

    if existing is None:
        if is_primary:
            await _unset_primary(db, user_id)
        row = UserIdentity(
            user_id=user_id,
            platform=platform.value,
            identity=normalized,
            is_primary=is_primary,
            metadata_=metadata,
            verified_at=verified_at,
        )
        db.add(row)
        _store_oauth(row, oauth)
        await db.flush()
        return ConnectResult(identity=row)

    if existing.user_id == user_id:
        if metadata is not None:
            existing.metadata_ = metadata
        if verified_at is not None:
            existing.verified_at = verified_at
        _store_oauth(existing, oauth)
        if is_primary and not existing.is_primary:
            await _unset_primary(db, user_id)
            existing.is_primary = True
        existing.updated_at = utc_now()
        await db.flush()
        return ConnectResult(identity=existing)

    previous_user_id = existing.user_id
    existing.user_id = user_id
    existing.is_primary = False
    if metadata is not None:
        existing.metadata_ = metadata
    if verified_at is not None:
        existing.verified_at = verified_at
    _store_oauth(existing, oauth)
    existing.updated_at = utc_now()
    await db.flush()

    await _move_owned_rows(db, previous_user_id, user_id)
    if await _count_identities(db, previous_user_id) == 0:
        await _delete_user(db, previous_user_id)
        logger.info(
            "Deleted user left without identities",
            extra={"user_id": str(previous_user_id)},
        )
    logger.info(
        f"Identity {platform.value} reassigned to {user_id}",
        extra={"user_id": str(previous_user_id)},
    )
    return ConnectResult(
        identity=existing, reassigned=True, previous_user_id=previous_user_id,
    )


async def admin_connect_identity(
    db: AsyncSession,
    user_id: uuid.UUID,
    platform: Platform | str,
    identity: str,
    is_primary: bool = False,
    metadata: dict | None = None,
) -> UserIdentity:
    """Admin connect: never reassigns, refuses identities that already exist."""
    platform = Platform(platform)
    user = await db.get(User, user_id)
    if user is None:
        raise ResourceNotFoundError("User", str(user_id))

    normalized = normalize_identity(platform, identity)
    existing = await get_identity(db, platform, normalized)
    if existing is not None:
        if existing.user_id == user_id:
            raise BusinessRuleError(
                "Identity already connected to this user", "IDENTITY_ALREADY_CONNECTED",
            )
        raise BusinessRuleError(
            "Identity already connected to another user", "IDENTITY_IN_USE",
        )

    if is_primary:
        await _unset_primary(db, user_id)
    row = UserIdentity(
        user_id=user_id,
        platform=platform.value,
        identity=normalized,
        is_primary=is_primary,
        metadata_=metadata,
        verified_at=utc_now(),
    )
    db.add(row)
    await db.flush()
    return row


async def disconnect_identity(
    db: AsyncSession, user_id: uuid.UUID | None, platform: Platform | str, identity: str,
) -> UserIdentity:
    """Remove an identity, keeping at least one and a primary. user_id=None means any owner."""
    row = await get_identity(db, platform, identity)
    if row is None or (user_id is not None and row.user_id != user_id):
        raise ResourceNotFoundError("Identity", f"{Platform(platform).value}:{identity}")

    owner_id = row.user_id
    if await _count_identities(db, owner_id) <= 1:
        raise BusinessRuleError(
            "Cannot disconnect the only identity", "LAST_IDENTITY",
        )
    was_primary = row.is_primary
    await db.delete(row)
    await db.flush()
    if was_primary:
        await _promote_any(db, owner_id)
    return row


# ─── Merge ───────────────────────────────────────────────────────

async def _move_owned_rows(
    db: AsyncSession, source_id: uuid.UUID, target_id: uuid.UUID,
) -> tuple[int, int]:
    sessions = await db.execute(
        update(PracticeSession)
        .where(PracticeSession.user_id == source_id)
        .values(user_id=target_id),
    )
    projects = await db.execute(
        update(Project)
        .where(Project.user_id == source_id)
        .values(user_id=target_id, updated_at=utc_now()),
    )
    return sessions.rowcount or 0, projects.rowcount or 0


async def _delete_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    await db.execute(
        delete(WebhookDelivery).where(
            WebhookDelivery.webhook_id.in_(
                select(WebhookSubscription.id)
                .where(WebhookSubscription.created_by == user_id),
            ),
        ),
    )
    await db.execute(
        delete(WebhookSubscription).where(WebhookSubscription.created_by == user_id),
    )
    await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
    await db.execute(delete(UserIdentity).where(UserIdentity.user_id == user_id))
    await db.execute(delete(User).where(User.id == user_id))


async def merge_users(
    db: AsyncSession, source_user_id: uuid.UUID, target_user_id: uuid.UUID,
) -> MergeResult:
    if source_user_id == target_user_id:
        raise BusinessRuleError("Cannot merge user with itself", "SELF_MERGE")

    source = await db.get(User, source_user_id)
    target = await db.get(User, target_user_id)
    if source is None or target is None:
        missing = source_user_id if source is None else target_user_id
        raise ResourceNotFoundError("User", str(missing))

    source_identities = await list_identities(db, source_user_id)
    if not source_identities:
        raise BusinessRuleError("Source user has no identities", "NO_IDENTITIES")
    platforms = [i.platform for i in source_identities]

    await db.execute(
        update(UserIdentity)
        .where(UserIdentity.user_id == source_user_id)
        .values(user_id=target_user_id, is_primary=False, updated_at=utc_now()),
    )
    moved_sessions, moved_projects = await _move_owned_rows(
        db, source_user_id, target_user_id,
    )
    await db.execute(
        update(RefreshToken)
        .where(RefreshToken.user_id == source_user_id)
        .values(user_id=target_user_id),
    )
    await _delete_user(db, source_user_id)
    logger.info(
        f"Merged user {source_user_id} into {target_user_id}",
        extra={"user_id": str(target_user_id)},
    )
    return MergeResult(
        source_user_id=source_user_id,
        target_user_id=target_user_id,
        merged_identities=len(source_identities),
        merged_platforms=platforms,
        moved_sessions=moved_sessions,
        moved_projects=moved_projects,
    )
