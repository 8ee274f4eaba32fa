"""ApiKey ORM — hashed client credentials for the X-API-Key header.

Invariants:
    - Only key_hash (sha256) is stored; the raw key is shown once at creation
    - key_prefix (8 chars after "cartel_") is unique and indexed for lookup
    - A key authenticates only while is_active and (expires_at is null or in the future)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Text, Boolean, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import StringArray


class ApiKey(Base):
    """Client application credential."""
    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    key_prefix: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    key_hash: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    scopes: Mapped[list[str]] = mapped_column(
        StringArray, nullable=False, default=lambda: ["read", "write"],
    )
    client_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    allowed_origins: Mapped[list[str] | None] = mapped_column(
        StringArray, nullable=True,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True,
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
        Index("api_keys_expires_idx", "expires_at"),
    )
