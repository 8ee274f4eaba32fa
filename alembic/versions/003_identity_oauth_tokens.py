"""OAuth tokens on user identities.

Revision ID: 003_oauth_tokens
Revises: 002_rls
Create Date: 2026-10-18
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "003_oauth_tokens"
down_revision: Union[str, None] = "002_rls"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("user_identities", sa.Column("oauth_access_token", sa.Text, nullable=True))
    op.add_column("user_identities", sa.Column("oauth_refresh_token", sa.Text, nullable=True))
    op.add_column(
        "user_identities",
        sa.Column("oauth_token_expires_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    op.drop_column("user_identities", "oauth_token_expires_at")
    op.drop_column("user_identities", "oauth_refresh_token")
    op.drop_column("user_identities", "oauth_access_token")
