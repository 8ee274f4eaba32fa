"""Root conftest — shared test configuration."""

import os

# Must be set before app.config.get_settings() is first called (lru_cache)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("API_KEY", "test-root-key")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-that-is-at-least-32-characters-long")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SIWE_DOMAIN", "localhost:3003")
os.environ.setdefault("WEBHOOK_RETRY_INTERVAL_SECONDS", "0")
os.environ.setdefault("ETH_RPC_URL", "")
