"""User & Identity Schemas — request bodies and response shaping for users and linked identities.

Invariants:
    - platform is validated against Platform before any handler runs
    - identity strings are stripped and non-empty
    - Masked serialization replaces evm/lens identities with MASKED_IDENTITY
    - OAuth tokens are accepted on connect but never serialized; responses only
      say whether an access token is stored and when it expires

Design Decisions:
    - Serializers are plain functions returning dicts, matching how routes build responses
    - metadata exposed as "metadata" (ORM attribute is metadata_ to dodge Base.metadata)
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.domain_types import (
    MASKED_IDENTITY, Platform, is_sensitive_platform, isoformat_or_none,
)
from app.models.user import User, UserIdentity


class _IdentityRef(BaseModel):
    platform: Platform
    identity: str = Field(min_length=1, max_length=500)

    @field_validator("identity")
    @classmethod
    def strip_identity(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identity cannot be empty")
        return v


class IdentityLookupCreate(_IdentityRef):
    """POST /users/id — find or create a user by identity."""
    metadata: dict | None = None


class ConnectIdentityRequest(_IdentityRef):
    metadata: dict | None = None
    verified_at: datetime | None = None
    is_primary: bool = False
    oauth_access_token: str | None = None
    oauth_refresh_token: str | None = None
    oauth_token_expires_at: datetime | None = None


class PrimaryIdentityRequest(_IdentityRef):
    pass


class AdminConnectRequest(_IdentityRef):
    user_id: UUID
    is_primary: bool = False
    metadata: dict | None = None


class AdminIdentityRequest(_IdentityRef):
    pass


class MergeUsersRequest(BaseModel):
    source_user_id: UUID
    target_user_id: UUID


# ─── Serializers ─────────────────────────────────────────────────

def identity_to_dict(identity: UserIdentity, mask: bool = False) -> dict:
    value = identity.identity
    if mask and is_sensitive_platform(identity.platform):
        value = MASKED_IDENTITY
    return {
        "user_id": str(identity.user_id),
        "platform": identity.platform,
        "identity": value,
        "is_primary": identity.is_primary,
        "metadata": identity.metadata_,
        "verified_at": isoformat_or_none(identity.verified_at),
        "has_oauth_token": identity.oauth_access_token is not None,
        "oauth_token_expires_at": isoformat_or_none(identity.oauth_token_expires_at),
        "created_at": isoformat_or_none(identity.created_at),
        "updated_at": isoformat_or_none(identity.updated_at),
    }


def user_to_dict(
    user: User,
    identities: list[UserIdentity] | None = None,
    mask: bool = False,
) -> dict:
    data = {
        "id": str(user.id),
        "address": MASKED_IDENTITY if (mask and user.address) else user.address,
        "role": user.role,
        "ens_name": user.ens_name,
        "ens_avatar": user.ens_avatar,
        "created_at": isoformat_or_none(user.created_at),
        "updated_at": isoformat_or_none(user.updated_at),
    }
    if identities is not None:
        data["identities"] = [identity_to_dict(i, mask) for i in identities]
    return data


def identity_lookup_to_dict(identity: UserIdentity) -> dict:
    return {
        "user_id": str(identity.user_id),
        "platform": identity.platform,
        "identity": identity.identity,
        "is_primary": identity.is_primary,
    }
