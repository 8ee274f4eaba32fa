"""Schema Metadata — every model registered on Base.metadata.

Tests cover:
    - importing app.models registers all fifteen tables
    - user_identities carries the OAuth token columns added in revision 003
"""

import app.models  # noqa: F401
from app.db.base import Base


def test_all_tables_registered():
    assert set(Base.metadata.tables) == {
        "users", "user_identities", "api_keys", "refresh_tokens",
        "applications", "application_votes", "practice_sessions", "projects",
        "treasuries", "project_treasuries", "webhook_subscriptions",
        "webhook_deliveries", "logs", "vanishing_channels", "channel_settings",
    }


def test_identity_oauth_columns():
    columns = Base.metadata.tables["user_identities"].columns
    assert {"oauth_access_token", "oauth_refresh_token", "oauth_token_expires_at"} <= set(
        columns.keys(),
    )
