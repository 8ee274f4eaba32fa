"""Request Dependencies — API key auth, JWT users, role/scope guards, RLS sessions and rate limits.

Invariants:
    - Every /api/v1 resource router depends on require_api_key (health and auth do not)
    - The root key (settings.api_key) never touches the database and carries every scope
    - get_current_user never raises: an absent/invalid bearer token yields None
    - require_user -> 401, require_member/require_admin/require_scopes -> 403
    - get_rls_db hands out the request session with the caller's RLS context applied

Design Decisions:
    - Plain FastAPI dependencies over middleware: per-route composition, visible in OpenAPI
      (ADR: explicit over implicit)
    - Role read from the users table, not the token: promotions/demotions take effect
      without re-login
    - Rate limiter lives on app.state, created lazily so tests without lifespan work
"""

import logging
import uuid
from dataclasses import dataclass, field

from fastapi import Depends, Header, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.credentials import hash_secret
from app.core.domain_types import ROOT_KEY_SCOPES, Scope, UserRole
from app.core.errors import (
    AuthenticationError, PermissionDeniedError, RateLimitExceededError,
)
from app.infrastructure.database import get_db
from app.infrastructure.rate_limiter import PRESETS, RateLimiter
from app.infrastructure.rls import apply_user_context
from app.models.user import User
from app.services.api_key_service import validate_api_key
from app.services.token_service import verify_access_token

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)

_BYPASS_SCOPES = {Scope.ROOT.value, Scope.ADMIN.value}


@dataclass
class ApiKeyContext:
    """The client application behind X-API-Key."""
    name: str
    scopes: list[str]
    is_root: bool = False
    key_id: uuid.UUID | None = None
    client_name: str | None = None
    allowed_origins: list[str] | None = None


@dataclass
class AuthContext:
    """The signed-in user behind a bearer token."""
    user_id: uuid.UUID
    role: str
    scopes: list[str] = field(default_factory=list)
    client_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_member(self) -> bool:
        return self.role in (UserRole.MEMBER.value, UserRole.ADMIN.value)


# ─── API keys ────────────────────────────────────────────────────

async def resolve_api_key(
    db: AsyncSession, raw_key: str,
) -> ApiKeyContext | None:
    """Root key or active database key; None if the key is unusable."""
    settings = get_settings()
    if settings.api_key and raw_key == settings.api_key:
        return ApiKeyContext(name="root", scopes=list(ROOT_KEY_SCOPES), is_root=True)
    validated = await validate_api_key(db, raw_key)
    if validated is None:
        return None
    return ApiKeyContext(
        name=validated.name,
        scopes=validated.scopes,
        key_id=validated.id,
        client_name=validated.client_name,
        allowed_origins=validated.allowed_origins,
    )


async def require_api_key(
    request: Request,
    x_api_key: str | None = Header(None, alias="X-API-Key"),
    db: AsyncSession = Depends(get_db),
) -> ApiKeyContext:
    if not x_api_key:
        raise AuthenticationError("API key required", "API_KEY_REQUIRED")
    context = await resolve_api_key(db, x_api_key)
    if context is None:
        logger.warning(
            "Rejected API key", extra={"path": request.url.path},
        )
        raise AuthenticationError("Invalid API key", "INVALID_API_KEY")
    request.state.api_key = context
    return context


def require_scopes(*scopes: str):
    """Dependency factory: every scope required unless the key holds root/admin."""

    async def check(key: ApiKeyContext = Depends(require_api_key)) -> ApiKeyContext:
        held = set(key.scopes)
        if held & _BYPASS_SCOPES:
            return key
        if not set(scopes) <= held:
            raise PermissionDeniedError(
                "Insufficient API key scopes",
                required=list(scopes),
                available=list(key.scopes),
            )
        return key

    return check


# ─── Users ───────────────────────────────────────────────────────

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    db: AsyncSession = Depends(get_db),
) -> AuthContext | None:
    if credentials is None:
        return None
    claims = verify_access_token(credentials.credentials)
    if claims is None:
        return None
    try:
        user_id = uuid.UUID(claims.user_id)
    except ValueError:
        return None
    user = await db.get(User, user_id)
    if user is None:
        return None
    context = AuthContext(
        user_id=user.id, role=user.role,
        scopes=claims.scopes, client_id=claims.client_id,
    )
    request.state.user = context
    return context


async def require_user(
    user: AuthContext | None = Depends(get_current_user),
) -> AuthContext:
    if user is None:
        raise AuthenticationError()
    return user


async def require_member(user: AuthContext = Depends(require_user)) -> AuthContext:
    if not user.is_member:
        raise PermissionDeniedError("Member access required")
    return user


async def require_admin(
    key: ApiKeyContext = Depends(require_api_key),
    user: AuthContext | None = Depends(get_current_user),
) -> AuthContext | ApiKeyContext:
    """Admin user (JWT) or an API key holding admin/root scope."""
    if user is not None and user.is_admin:
        return user
    if set(key.scopes) & _BYPASS_SCOPES:
        return key
    raise PermissionDeniedError("Admin access required")


# ─── RLS session ─────────────────────────────────────────────────

async def get_rls_db(
    db: AsyncSession = Depends(get_db),
    user: AuthContext | None = Depends(get_current_user),
) -> AsyncSession:
    if user is not None:
        await apply_user_context(db, str(user.user_id), user.role)
    else:
        await apply_user_context(db, None, None)
    return db


# ─── Rate limiting ───────────────────────────────────────────────

def _limiter(request: Request) -> RateLimiter:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        limiter = RateLimiter()
        request.app.state.rate_limiter = limiter
    return limiter


def _caller_key(request: Request) -> str:
    """User id, else API key hash, else client IP."""
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        claims = verify_access_token(auth[7:].strip())
        if claims is not None:
            return f"user:{claims.user_id}"
    api_key = request.headers.get("x-api-key")
    if api_key:
        return f"key:{hash_secret(api_key)[:16]}"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def rate_limit(preset_name: str):
    """Dependency factory applying one of PRESETS to the caller."""
    preset = PRESETS[preset_name]

    async def limit(request: Request, response: Response) -> None:
        if not get_settings().rate_limit_enabled:
            return
        result = _limiter(request).hit(
            f"{preset.name}:{_caller_key(request)}",
            preset.limit,
            preset.window_seconds,
        )
        for name, value in result.headers().items():
            response.headers[name] = value
        if not result.allowed:
            logger.warning(
                f"Rate limit exceeded ({preset.name})",
                extra={"path": request.url.path},
            )
            raise RateLimitExceededError(result.retry_after, headers=result.headers())

    return limit
