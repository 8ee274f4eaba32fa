"""Service test fixtures — async DB + FastAPI test client.

Invariants:
    - Every test gets a fresh in-memory SQLite database
    - get_db dependency overridden to use test DB session
    - db_manager patched for background tasks (webhooks) that bypass get_db
    - Webhook HTTP traffic goes to an httpx.MockTransport, never the network
    - ENS lookups answer from the ens_profiles dict, never an RPC endpoint
    - In-process caches (API keys, nonces, rate limiter) are reset per test

Design Decisions:
    - SQLite in-memory with StaticPool: one shared connection, so background-task
      sessions see the rows written by request sessions (ADR: portable test DB)
    - db_manager patched: background tasks use db_manager.session() directly
"""

import httpx
import pytest
from sqlalchemy.ext.asyncio import (
    AsyncSession, create_async_engine, async_sessionmaker,
)
from sqlalchemy.pool import StaticPool
from httpx import ASGITransport, AsyncClient

from app.core.domain_types import Platform, UserRole
from app.db.base import Base
from app.infrastructure.ens_resolver import ENSProfile, ENSResolver, set_ens_resolver
from app.infrastructure.database import get_db, DatabaseSessionManager
from app.infrastructure.rate_limiter import RateLimiter
from app.infrastructure.webhook_client import WebhookClient
from app.models.user import User, UserIdentity
import app.infrastructure.database as db_module
from app.main import app
from app.services.api_key_service import get_api_key_cache
from app.services.siwe_auth import get_nonce_store
from app.services.token_service import create_access_token
from app.services.webhook_dispatcher import WebhookDispatcher, set_dispatcher

ROOT_KEY = "test-root-key"


@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def test_session_factory(test_engine):
    return async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def fake_db_manager(test_engine, test_session_factory):
    manager = DatabaseSessionManager.__new__(DatabaseSessionManager)
    manager.engine = test_engine
    manager._session_factory = test_session_factory
    return manager


@pytest.fixture
def webhook_server():
    """Records webhook requests; set .status to change the reply code."""

    class _Server:
        def __init__(self):
            self.requests: list[httpx.Request] = []
            self.status = 200

        def handler(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(self.status, text="ok" if self.status < 400 else "nope")

    return _Server()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def dispatcher(fake_db_manager, webhook_server, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return WebhookDispatcher(
        lambda: fake_db_manager.user_session(None, UserRole.ADMIN.value),
        client=WebhookClient(transport=httpx.MockTransport(webhook_server.handler)),
        sleep=fake_sleep,
    )


@pytest.fixture
def ens_profiles():
    """address (lowercase) -> ENSProfile, or an Exception to raise from the lookup."""
    return {}


@pytest.fixture
def ens_resolver(ens_profiles):
    async def lookup(address: str) -> ENSProfile:
        answer = ens_profiles.get(address, ENSProfile(name=None, avatar=None))
        if isinstance(answer, Exception):
            raise answer
        return answer

    return ENSResolver(lookup=lookup)


@pytest.fixture
async def client(test_session_factory, fake_db_manager, dispatcher, ens_resolver):
    """FastAPI test client with DB dependency overridden."""
    async def override_get_db():
        async with test_session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    original_manager = db_module.db_manager
    db_module.db_manager = fake_db_manager
    set_dispatcher(dispatcher)
    set_ens_resolver(ens_resolver)
    app.state.rate_limiter = RateLimiter()
    get_api_key_cache().clear()
    get_nonce_store().clear()

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test",
    ) as c:
        yield c

    app.dependency_overrides.clear()
    db_module.db_manager = original_manager
    set_dispatcher(None)
    set_ens_resolver(None)


@pytest.fixture
def api_headers():
    return {"X-API-Key": ROOT_KEY}


@pytest.fixture
def make_user(test_session_factory):
    """Factory: insert a user with one primary identity, return it."""

    async def _make(
        role: str = UserRole.AUTHENTICATED.value,
        platform: str = Platform.DISCORD.value,
        identity: str | None = None,
        address: str | None = None,
    ) -> User:
        async with test_session_factory() as db:
            user = User(role=role, address=address)
            db.add(user)
            await db.flush()
            db.add(UserIdentity(
                user_id=user.id,
                platform=platform,
                identity=identity or f"{platform}-{user.id.hex[:8]}",
                is_primary=True,
            ))
            await db.commit()
            return user

    return _make


@pytest.fixture
def auth_headers():
    """Headers for a user: root API key plus a bearer access token."""

    def _headers(user: User) -> dict:
        return {
            "X-API-Key": ROOT_KEY,
            "Authorization": f"Bearer {create_access_token(str(user.id)).token}",
        }

    return _headers
