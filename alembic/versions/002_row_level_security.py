"""Row-level security — policies driven by app.current_user_id / app.current_user_role.

Revision ID: 002_rls
Revises: 001_initial
Create Date: 2026-10-18

Policies read the transaction-local settings written by infrastructure/rls.py.
RLS is enabled but not forced: the migration/owner role keeps full access, a
restricted application role is bound by the policies.
"""
from typing import Sequence, Union

from alembic import op

revision: str = "002_rls"
down_revision: Union[str, None] = "001_initial"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_USER = "NULLIF(current_setting('app.current_user_id', true), '')::uuid"
_ROLE = "current_setting('app.current_user_role', true)"
_IS_ADMIN = f"{_ROLE} = 'admin'"
_IS_MEMBER = f"{_ROLE} IN ('member', 'admin')"

_OWNED_TABLES = {
    "user_identities": "user_id",
    "refresh_tokens": "user_id",
    "practice_sessions": "user_id",
    "webhook_subscriptions": "created_by",
}

_POLICIES: list[tuple[str, str, str, str]] = [
    # (table, name, command, USING/WITH CHECK expression)
    ("users", "users_select_self_or_member", "SELECT", f"id = {_USER} OR {_IS_MEMBER}"),
    ("users", "users_admin_all", "ALL", _IS_ADMIN),
    ("projects", "projects_select_visible", "SELECT", f"is_public OR user_id = {_USER} OR {_IS_ADMIN}"),
    ("projects", "projects_write_owner", "ALL", f"user_id = {_USER} OR {_IS_ADMIN}"),
    ("applications", "applications_select_member", "SELECT", _IS_MEMBER),
    ("applications", "applications_admin_all", "ALL", _IS_ADMIN),
    ("application_votes", "application_votes_member_all", "ALL", _IS_MEMBER),
    ("api_keys", "api_keys_admin_all", "ALL", _IS_ADMIN),
    ("logs", "logs_admin_all", "ALL", _IS_ADMIN),
]


def upgrade() -> None:
    tables = {table for table, *_ in _POLICIES} | set(_OWNED_TABLES)
    for table in sorted(tables):
        op.execute(f'ALTER TABLE "{table}" ENABLE ROW LEVEL SECURITY')

    for table, column in _OWNED_TABLES.items():
        op.execute(
            f'CREATE POLICY "{table}_own" ON "{table}" FOR ALL '
            f"USING ({column} = {_USER} OR {_IS_ADMIN}) "
            f"WITH CHECK ({column} = {_USER} OR {_IS_ADMIN})",
        )

    for table, name, command, expr in _POLICIES:
        if command == "SELECT":
            op.execute(f'CREATE POLICY "{name}" ON "{table}" FOR SELECT USING ({expr})')
        else:
            op.execute(
                f'CREATE POLICY "{name}" ON "{table}" FOR {command} '
                f"USING ({expr}) WITH CHECK ({expr})",
            )


def downgrade() -> None:
    for table, name, *_ in _POLICIES:
        op.execute(f'DROP POLICY IF EXISTS "{name}" ON "{table}"')
    for table in _OWNED_TABLES:
        op.execute(f'DROP POLICY IF EXISTS "{table}_own" ON "{table}"')
    tables = {table for table, *_ in _POLICIES} | set(_OWNED_TABLES)
    for table in sorted(tables):
        op.execute(f'ALTER TABLE "{table}" DISABLE ROW LEVEL SECURITY')
