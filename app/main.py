"""Cartel API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map CartelError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database initialized on startup via lifespan context manager
    - Background workers (log sink, webhook retry loop) start in lifespan and are
      stopped before the engine is disposed

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
      (ADR: FastAPI 0.128)
    - DB log persistence only when enabled (or in production): local runs stay stdout-only
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.error_handlers import register_error_handlers
from app.api.middleware import request_logging_middleware
from app.api.routes import (
    admin_identities, admin_keys, applications, auth, channel_settings, health,
    identities, logs, me_identities, practice_sessions, projects, treasuries,
    users, vanishing_channels, webhooks,
)
from app.config import get_settings
from app.infrastructure import database
from app.infrastructure.database import init_db
from app.infrastructure.log_sink import init_log_sink
from app.infrastructure.observability import DatabaseLogHandler, setup_logging
from app.infrastructure.rate_limiter import RateLimiter
from app.services.webhook_dispatcher import run_retry_loop

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    app.state.rate_limiter = RateLimiter()

    sink = None
    db_handler = None
    if settings.db_logging_active:
        sink = init_log_sink(
            database.db_manager.session,
            batch_size=settings.log_db_batch_size,
            flush_interval=settings.log_db_flush_interval_seconds,
            retry_delay=settings.log_db_retry_delay_seconds,
            defaults={
                "environment": settings.environment,
                "service": settings.service_name,
                "version": settings.service_version,
            },
        )
        sink.start()
        db_handler = DatabaseLogHandler(sink)
        logging.root.addHandler(db_handler)

    retry_task = None
    if settings.webhook_retry_interval_seconds > 0:
        retry_task = asyncio.create_task(
            run_retry_loop(settings.webhook_retry_interval_seconds),
        )

    logger.info("Cartel API started")
    yield
    logger.info("Cartel API shutting down")

    if retry_task is not None:
        retry_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await retry_task
    if sink is not None:
        logging.root.removeHandler(db_handler)
        await sink.stop()
    await database.db_manager.dispose()


settings = get_settings()
app = FastAPI(
    title="Cartel API", version=settings.service_version, lifespan=lifespan,
)

# CORS — configured from settings, not hardcoded
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining",
        "X-RateLimit-Reset", "Retry-After",
    ],
)
app.middleware("http")(request_logging_middleware)
register_error_handlers(app)

# Routes — explicit registration; specific prefixes before parameterized ones
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(me_identities.router)
app.include_router(applications.router)
app.include_router(identities.router)
app.include_router(users.router)
app.include_router(admin_identities.router)
app.include_router(admin_keys.router)
app.include_router(practice_sessions.router)
app.include_router(projects.router)
app.include_router(treasuries.router)
app.include_router(webhooks.router)
app.include_router(logs.router)
app.include_router(vanishing_channels.router)
app.include_router(channel_settings.router)
