"""Initial schema — users, identities, credentials, community data, webhooks, logs.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="authenticated"),
        sa.Column("ens_name", sa.Text, nullable=True),
        sa.Column("ens_avatar", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("users_address_idx", "users", ["address"])
    op.create_index("users_role_idx", "users", ["role"])

    op.create_table(
        "user_identities",
        sa.Column("platform", sa.String(20), primary_key=True),
        sa.Column("identity", sa.Text, primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("is_primary", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("user_identities_user_id_idx", "user_identities", ["user_id"])

    op.create_table(
        "api_keys",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("key_prefix", sa.Text, nullable=False, unique=True),
        sa.Column("key_hash", sa.Text, nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("scopes", ARRAY(sa.String), nullable=False, server_default="{read,write}"),
        sa.Column("client_name", sa.Text, nullable=True),
        sa.Column("allowed_origins", ARRAY(sa.String), nullable=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("api_keys_expires_idx", "api_keys", ["expires_at"])

    op.create_table(
        "refresh_tokens",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("token_hash", sa.Text, nullable=False, unique=True),
        sa.Column("family_id", UUID(as_uuid=True), nullable=False),
        sa.Column("client_id", sa.Text, nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("refresh_tokens_user_id_idx", "refresh_tokens", ["user_id"])
    op.create_index("refresh_tokens_family_id_idx", "refresh_tokens", ["family_id"])

    op.create_table(
        "applications",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("application_number", sa.Integer, nullable=False, unique=True),
        sa.Column("message_id", sa.Text, nullable=False, unique=True),
        sa.Column("wallet_address", sa.Text, nullable=False),
        sa.Column("ens_name", sa.Text, nullable=True),
        sa.Column("github", sa.Text, nullable=True),
        sa.Column("farcaster", sa.Text, nullable=True),
        sa.Column("lens", sa.Text, nullable=True),
        sa.Column("twitter", sa.Text, nullable=True),
        sa.Column("excitement", sa.Text, nullable=False),
        sa.Column("motivation", sa.Text, nullable=False),
        sa.Column("signature", sa.Text, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("applications_status_idx", "applications", ["status"])

    op.create_table(
        "application_votes",
        sa.Column("application_id", UUID(as_uuid=True), sa.ForeignKey("applications.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("user_id", sa.Text, primary_key=True),
        sa.Column("user_name", sa.Text, nullable=True),
        sa.Column("vote_type", sa.String(10), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "practice_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration", sa.Integer, nullable=True),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
    )
    op.create_index("practice_sessions_user_date_idx", "practice_sessions", ["user_id", "date"])

    op.create_table(
        "projects",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("github_url", sa.Text, nullable=True),
        sa.Column("deployment_url", sa.Text, nullable=True),
        sa.Column("tags", ARRAY(sa.String), nullable=False, server_default="{}"),
        sa.Column("is_public", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_index("projects_user_id_idx", "projects", ["user_id"])
    op.create_index("projects_is_public_idx", "projects", ["is_public"])
    op.create_index("projects_tags_gin_idx", "projects", ["tags"], postgresql_using="gin")

    op.create_table(
        "treasuries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("address", sa.Text, nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("purpose", sa.Text, nullable=True),
        sa.Column("chain_ids", ARRAY(sa.Integer), nullable=False, server_default="{1}"),
        sa.Column("type", sa.String(20), nullable=False, server_default="safe"),
        sa.Column("threshold", sa.Integer, nullable=True),
        sa.Column("owners", ARRAY(sa.String), nullable=True),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )

    op.create_table(
        "project_treasuries",
        sa.Column("project_id", UUID(as_uuid=True), sa.ForeignKey("projects.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("treasury_id", UUID(as_uuid=True), sa.ForeignKey("treasuries.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("added_by", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="primary"),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "webhook_subscriptions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("secret", sa.Text, nullable=True),
        sa.Column("events", ARRAY(sa.String), nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("created_by", UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        *_timestamps(),
    )
    op.create_index("webhook_subscriptions_created_by_idx", "webhook_subscriptions", ["created_by"])

    op.create_table(
        "webhook_deliveries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("webhook_id", UUID(as_uuid=True), sa.ForeignKey("webhook_subscriptions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column("event_id", sa.Text, nullable=False),
        sa.Column("payload", JSONB, nullable=False),
        sa.Column("url", sa.Text, nullable=False),
        sa.Column("status_code", sa.Integer, nullable=True),
        sa.Column("response_body", sa.Text, nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="1"),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("webhook_deliveries_webhook_id_idx", "webhook_deliveries", ["webhook_id"])
    op.create_index("webhook_deliveries_next_retry_idx", "webhook_deliveries", ["next_retry_at"])

    op.create_table(
        "logs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("level", sa.String(10), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("data", sa.Text, nullable=True),
        sa.Column("route", sa.Text, nullable=True),
        sa.Column("method", sa.String(10), nullable=True),
        sa.Column("path", sa.Text, nullable=True),
        sa.Column("status_code", sa.Integer, nullable=True),
        sa.Column("duration", sa.Integer, nullable=True),
        sa.Column("user_id", sa.Text, nullable=True),
        sa.Column("user_role", sa.String(20), nullable=True),
        sa.Column("client_ip", sa.Text, nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
        sa.Column("session_id", sa.Text, nullable=True),
        sa.Column("environment", sa.Text, nullable=True),
        sa.Column("version", sa.Text, nullable=True),
        sa.Column("service", sa.Text, nullable=False, server_default="cartel-api"),
        sa.Column("error_name", sa.Text, nullable=True),
        sa.Column("error_stack", sa.Text, nullable=True),
        sa.Column("tags", ARRAY(sa.String), nullable=True),
        sa.Column("category", sa.Text, nullable=True),
        sa.Column("operation", sa.Text, nullable=True),
        sa.Column("trace_id", sa.Text, nullable=True),
        sa.Column("correlation_id", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("logs_timestamp_idx", "logs", ["timestamp"])
    op.create_index("logs_level_idx", "logs", ["level"])
    op.create_index("logs_route_idx", "logs", ["route"])

    op.create_table(
        "vanishing_channels",
        sa.Column("channel_id", sa.Text, primary_key=True),
        sa.Column("guild_id", sa.Text, nullable=False),
        sa.Column("vanish_after", sa.Integer, nullable=False),
        sa.Column("messages_deleted", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_deletion", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("vanishing_channels_guild_idx", "vanishing_channels", ["guild_id"])

    op.create_table(
        "channel_settings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")),
        sa.Column("guild_id", sa.Text, nullable=False),
        sa.Column("key", sa.Text, nullable=False),
        sa.Column("channel_id", sa.Text, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("guild_id", "key", name="channel_settings_guild_key_uq"),
    )


def downgrade() -> None:
    for table in (
        "channel_settings", "vanishing_channels", "logs", "webhook_deliveries",
        "webhook_subscriptions", "project_treasuries", "treasuries", "projects",
        "practice_sessions", "application_votes", "applications", "refresh_tokens",
        "api_keys", "user_identities", "users",
    ):
        op.drop_table(table)
