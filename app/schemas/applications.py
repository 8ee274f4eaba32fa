"""Application Schemas — membership applications, status decisions and votes.

Invariants:
    - wallet_address must be a 0x-prefixed 40-hex address
    - status updates accept only approved | rejected (pending is the initial state)
"""

from typing import Literal

from pydantic import BaseModel, Field

from app.core.domain_types import VoteType, isoformat_or_none
from app.models.application import Application, ApplicationVote


class ApplicationCreate(BaseModel):
    message_id: str = Field(min_length=1, max_length=100)
    wallet_address: str = Field(pattern=r"^0x[a-fA-F0-9]{40}$")
    ens_name: str | None = None
    github: str | None = None
    farcaster: str | None = None
    lens: str | None = None
    twitter: str | None = None
    excitement: str = Field(min_length=1, max_length=5000)
    motivation: str = Field(min_length=1, max_length=5000)
    signature: str = Field(min_length=1)


class ApplicationStatusUpdate(BaseModel):
    status: Literal["approved", "rejected"]


class VoteCreate(BaseModel):
    user_id: str = Field(min_length=1, max_length=100)
    user_name: str = Field(min_length=1, max_length=200)
    vote_type: VoteType


def application_to_dict(application: Application) -> dict:
    return {
        "id": str(application.id),
        "application_number": application.application_number,
        "message_id": application.message_id,
        "wallet_address": application.wallet_address,
        "ens_name": application.ens_name,
        "github": application.github,
        "farcaster": application.farcaster,
        "lens": application.lens,
        "twitter": application.twitter,
        "excitement": application.excitement,
        "motivation": application.motivation,
        "signature": application.signature,
        "status": application.status,
        "submitted_at": isoformat_or_none(application.submitted_at),
        "decided_at": isoformat_or_none(application.decided_at),
    }


def vote_to_dict(vote: ApplicationVote) -> dict:
    return {
        "user_id": vote.user_id,
        "user_name": vote.user_name,
        "vote_type": vote.vote_type,
        "created_at": isoformat_or_none(vote.created_at),
    }
