"""User ORM — platform members and the external identities linked to them.

Invariants:
    - A user owns zero or more identities; (platform, identity) is globally unique
    - At most one identity per user is primary (enforced by services, not the DB)
    - evm/lens identities are stored lowercased (normalize_identity)
    - role is one of authenticated | member | admin and feeds app.current_user_role

Design Decisions:
    - Composite natural key for identities: lookups are always by (platform, identity)
    - identities loaded selectin: every user response embeds them, async forbids lazy loads
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Boolean, DateTime, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class User(Base):
    """User aggregate root — identities, sessions and projects hang off it."""
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default="authenticated",
    )
    ens_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    ens_avatar: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    identities: Mapped[list["UserIdentity"]] = relationship(
        "UserIdentity", back_populates="user",
        cascade="all, delete-orphan", lazy="selectin",
        order_by=lambda: [UserIdentity.is_primary.desc(), UserIdentity.created_at],
    )

    __table_args__ = (
        Index("users_address_idx", "address"),
        Index("users_role_idx", "role"),
    )


class UserIdentity(Base):
    """External account (wallet, Discord, Lens, ...) linked to a user."""
    __tablename__ = "user_identities"

    platform: Mapped[str] = mapped_column(String(20), primary_key=True)
    identity: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_primary: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    metadata_: Mapped[dict | None] = mapped_column(
        "metadata", JSON, nullable=True,
    )
    verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    # OAuth credentials of the provider (Discord, GitHub); never serialized
    oauth_access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    oauth_refresh_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    oauth_token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user: Mapped["User"] = relationship("User", back_populates="identities")

    __table_args__ = (
        Index("user_identities_user_id_idx", "user_id"),
    )
