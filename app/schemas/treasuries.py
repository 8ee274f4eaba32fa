"""Treasury Schemas — on-chain treasuries and their links to projects.

Invariants:
    - address is a 0x 40-hex address, stored lowercased
    - chain_ids non-empty positive integers (default [1], Ethereum mainnet)
    - A link request names a treasury_id, or an address + name to find/create one
"""

from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.domain_types import isoformat_or_none
from app.models.treasury import ProjectTreasury, Treasury

_ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"


class TreasuryCreate(BaseModel):
    address: str = Field(pattern=_ADDRESS_PATTERN)
    name: str = Field(min_length=1, max_length=200)
    purpose: str | None = Field(None, max_length=2000)
    chain_ids: list[int] = Field(default_factory=lambda: [1], min_length=1)
    type: str = Field("safe", min_length=1, max_length=50)
    threshold: int | None = Field(None, ge=1)
    owners: list[str] | None = None
    metadata: dict | None = None

    @field_validator("address")
    @classmethod
    def lower_address(cls, v: str) -> str:
        return v.lower()

    @field_validator("chain_ids")
    @classmethod
    def positive_chains(cls, v: list[int]) -> list[int]:
        if any(c <= 0 for c in v):
            raise ValueError("chain ids must be positive")
        return v


class TreasuryUpdate(BaseModel):
    address: str | None = Field(None, pattern=_ADDRESS_PATTERN)
    name: str | None = Field(None, min_length=1, max_length=200)
    purpose: str | None = Field(None, max_length=2000)
    chain_ids: list[int] | None = Field(None, min_length=1)
    type: str | None = Field(None, min_length=1, max_length=50)
    threshold: int | None = Field(None, ge=1)
    owners: list[str] | None = None
    metadata: dict | None = None
    is_active: bool | None = None

    @field_validator("address")
    @classmethod
    def lower_address(cls, v: str | None) -> str | None:
        return v.lower() if v else v


class ProjectTreasuryLink(BaseModel):
    treasury_id: UUID | None = None
    address: str | None = Field(None, pattern=_ADDRESS_PATTERN)
    name: str | None = Field(None, min_length=1, max_length=200)
    chain_ids: list[int] = Field(default_factory=lambda: [1], min_length=1)
    role: str = Field("primary", min_length=1, max_length=50)
    description: str | None = Field(None, max_length=2000)

    @field_validator("address")
    @classmethod
    def lower_address(cls, v: str | None) -> str | None:
        return v.lower() if v else v


def treasury_to_dict(treasury: Treasury) -> dict:
    return {
        "id": str(treasury.id),
        "address": treasury.address,
        "name": treasury.name,
        "purpose": treasury.purpose,
        "chain_ids": list(treasury.chain_ids or []),
        "type": treasury.type,
        "threshold": treasury.threshold,
        "owners": treasury.owners,
        "metadata": treasury.metadata_,
        "is_active": treasury.is_active,
        "created_at": isoformat_or_none(treasury.created_at),
        "updated_at": isoformat_or_none(treasury.updated_at),
    }


def link_to_dict(link: ProjectTreasury) -> dict:
    return {
        "project_id": str(link.project_id),
        "treasury_id": str(link.treasury_id),
        "added_by": str(link.added_by),
        "role": link.role,
        "description": link.description,
        "created_at": isoformat_or_none(link.created_at),
    }
