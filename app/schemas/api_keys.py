"""API Key Schemas — admin create/update/rotate bodies and the masked key view."""

from datetime import datetime

from pydantic import BaseModel, Field

from app.core.credentials import mask_api_key
from app.core.domain_types import Scope, isoformat_or_none
from app.models.api_key import ApiKey


class ApiKeyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    scopes: list[Scope] = Field(default_factory=lambda: [Scope.READ, Scope.WRITE])
    client_name: str | None = Field(None, max_length=100)
    allowed_origins: list[str] | None = None
    expires_at: datetime | None = None


class ApiKeyUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    description: str | None = Field(None, max_length=500)
    scopes: list[Scope] | None = None
    client_name: str | None = Field(None, max_length=100)
    allowed_origins: list[str] | None = None
    expires_at: datetime | None = None
    is_active: bool | None = None


class ApiKeyRotate(BaseModel):
    # Seconds the old key keeps working; 0 deactivates it immediately
    grace_period: int = Field(300, ge=0, le=7 * 24 * 3600)


def api_key_to_dict(key: ApiKey) -> dict:
    return {
        "id": str(key.id),
        "name": key.name,
        "description": key.description,
        "key_prefix": mask_api_key(key.key_prefix),
        "scopes": list(key.scopes or []),
        "client_name": key.client_name,
        "allowed_origins": key.allowed_origins,
        "is_active": key.is_active,
        "last_used_at": isoformat_or_none(key.last_used_at),
        "expires_at": isoformat_or_none(key.expires_at),
        "created_at": isoformat_or_none(key.created_at),
        "updated_at": isoformat_or_none(key.updated_at),
    }
