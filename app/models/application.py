"""Application ORM — membership applications and the votes cast on them.

Invariants:
    - application_number is unique and assigned as max(application_number) + 1
    - message_id is unique (one application per announcement message)
    - status: pending -> approved | rejected; decided_at set on decision
    - One vote per (application_id, user_id); re-voting replaces the vote
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Text, Integer, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class Application(Base):
    """Membership application submitted through the community bot."""
    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4,
    )
    application_number: Mapped[int] = mapped_column(
        Integer, nullable=False, unique=True,
    )
    message_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    wallet_address: Mapped[str] = mapped_column(Text, nullable=False)
    ens_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    github: Mapped[str | None] = mapped_column(Text, nullable=True)
    farcaster: Mapped[str | None] = mapped_column(Text, nullable=True)
    lens: Mapped[str | None] = mapped_column(Text, nullable=True)
    twitter: Mapped[str | None] = mapped_column(Text, nullable=True)
    excitement: Mapped[str] = mapped_column(Text, nullable=False)
    motivation: Mapped[str] = mapped_column(Text, nullable=False)
    signature: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    __table_args__ = (
        Index("applications_status_idx", "status"),
    )


class ApplicationVote(Base):
    """A single reviewer's vote; user_id is the reviewer's Discord id."""
    __tablename__ = "application_votes"

    application_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    vote_type: Mapped[str] = mapped_column(String(10), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
