"""Row-Level Security Context — binds the caller's identity to every transaction of a session.

Invariants:
    - user_id must match ^[a-zA-Z0-9_-]+$ and role must be authenticated|member|admin|public
      (validated before anything reaches the database)
    - Variables are transaction-local (set_config(..., true) == SET LOCAL): they vanish on
      commit/rollback and are re-applied at the start of the next transaction
    - No user -> app.current_user_id unset, app.current_user_role = 'public'
    - Only PostgreSQL receives the variables; other dialects just validate

Design Decisions:
    - set_config over SET LOCAL: SET cannot take bind parameters, set_config can
      (ADR: no string interpolation into SQL)
    - after_begin session event over wrapping every query: a route may commit mid-request
      and the next implicit transaction must carry the same context
"""

import logging
import re
from dataclasses import dataclass

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.domain_types import PUBLIC_ROLE, RLS_ROLES
from app.core.errors import InvalidUserContextError

logger = logging.getLogger(__name__)

_USER_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_CONTEXT_KEY = "rls_context"
_HOOK_KEY = "rls_hook_installed"

_SET_USER_ID = text("SELECT set_config('app.current_user_id', :value, true)")
_SET_USER_ROLE = text("SELECT set_config('app.current_user_role', :value, true)")


@dataclass(frozen=True)
class UserContext:
    user_id: str | None
    role: str


def validate_user_context(user_id: str | None, role: str | None) -> UserContext:
    """Reject ids/roles that could not safely become session variables."""
    if user_id is not None and not _USER_ID_PATTERN.match(str(user_id)):
        raise InvalidUserContextError("Invalid user ID format")
    if role is not None and role not in RLS_ROLES:
        raise InvalidUserContextError("Invalid user role")
    return UserContext(
        user_id=str(user_id) if user_id is not None else None,
        role=role or PUBLIC_ROLE,
    )


def _statements(ctx: UserContext) -> list[tuple]:
    stmts = []
    if ctx.user_id:
        stmts.append((_SET_USER_ID, {"value": ctx.user_id}))
    stmts.append((_SET_USER_ROLE, {"value": ctx.role}))
    return stmts


def _on_after_begin(session, transaction, connection) -> None:
    ctx: UserContext | None = session.info.get(_CONTEXT_KEY)
    if ctx is None or connection.dialect.name != "postgresql":
        return
    for stmt, params in _statements(ctx):
        connection.execute(stmt, params)


async def apply_user_context(
    session: AsyncSession, user_id: str | None, role: str | None,
) -> UserContext:
    """Attach an RLS context to the session.

    Applies immediately if a transaction is already open, and to every
    transaction the session begins afterwards.
    """
    ctx = validate_user_context(user_id, role)
    session.info[_CONTEXT_KEY] = ctx
    if not session.info.get(_HOOK_KEY):
        event.listen(session.sync_session, "after_begin", _on_after_begin)
        session.info[_HOOK_KEY] = True

    if session.in_transaction() and session.get_bind().dialect.name == "postgresql":
        for stmt, params in _statements(ctx):
            await session.execute(stmt, params)
    logger.debug(
        "RLS context applied",
        extra={"user_id": ctx.user_id, "user_role": ctx.role},
    )
    return ctx


def current_user_context(session: AsyncSession) -> UserContext | None:
    return session.info.get(_CONTEXT_KEY)
