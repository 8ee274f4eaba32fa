"""Discord ORM — per-channel auto-delete configs and per-guild channel bindings.

Invariants:
    - One vanishing config per channel (channel_id is the primary key)
    - vanish_after is seconds (> 0); messages_deleted only ever grows
    - One channel binding per (guild_id, key)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Text, Integer, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class VanishingChannel(Base):
    __tablename__ = "vanishing_channels"

    channel_id: Mapped[str] = mapped_column(Text, primary_key=True)
    guild_id: Mapped[str] = mapped_column(Text, nullable=False)
    vanish_after: Mapped[int] = mapped_column(Integer, nullable=False)
    messages_deleted: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0,
    )
    last_deletion: Mapped[datetime | None] = mapped_column(
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

    __table_args__ = (
        Index("vanishing_channels_guild_idx", "guild_id"),
    )


class ChannelSetting(Base):
    __tablename__ = "channel_settings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    guild_id: Mapped[str] = mapped_column(Text, nullable=False)
    key: Mapped[str] = mapped_column(Text, nullable=False)
    channel_id: Mapped[str] = mapped_column(Text, nullable=False)
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

    __table_args__ = (
        UniqueConstraint("guild_id", "key", name="channel_settings_guild_key_uq"),
    )
