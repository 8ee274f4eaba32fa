"""Application Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - All secrets come from environment variables (never hardcoded)
    - get_settings() is cached (lru_cache) — single instance per process
    - api_key is the root key: bypasses the api_keys table, carries every scope

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support (ADR: developer UX)
    - Defaults provided for all non-secret settings: works out-of-the-box with docker-compose
    - Webhook retry knobs live here, per-subscription metadata overrides them at delivery time
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = (
        "postgresql+asyncpg://cartel:cartel@db:5432/cartel"
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def convert_postgres_url(cls, v: str) -> str:
        """Hosting providers hand out postgresql:// but asyncpg needs postgresql+asyncpg://."""
        if isinstance(v, str) and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Auth
    jwt_secret: str = "development-secret-key-change-this-in-production-minimum-32-chars"
    api_key: str | None = None
    siwe_domain: str = "localhost:3003"
    access_token_ttl_seconds: int = 15 * 60
    refresh_token_ttl_days: int = 30
    nonce_ttl_seconds: int = 5 * 60
    api_key_cache_ttl_seconds: int = 120

    # ENS (reverse resolution on sign-in); empty URL disables lookups
    eth_rpc_url: str | None = "https://eth.llamarpc.com"
    ens_cache_ttl_seconds: int = 3600

    # Rate limiting
    rate_limit_enabled: bool = True

    # Webhooks
    webhook_timeout_seconds: float = 10.0
    webhook_retry_attempts: int = 3
    webhook_max_retry_attempts: int = 5
    webhook_base_delay_ms: int = 1000
    webhook_max_delay_ms: int = 30_000
    webhook_retry_interval_seconds: int = 60

    # API
    cors_origins: list[str] = ["http://localhost:5173"]

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"
    log_db_enabled: bool = False
    log_db_batch_size: int = 50
    log_db_flush_interval_seconds: float = 5.0
    log_db_retry_delay_seconds: float = 10.0

    # Service identity (stamped on every persisted log row)
    environment: str = "development"
    service_name: str = "cartel-api"
    service_version: str = "1.0.0"

    @property
    def db_logging_active(self) -> bool:
        return self.log_db_enabled or self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()
