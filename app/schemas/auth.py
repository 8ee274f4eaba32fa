"""Auth Schemas — SIWE challenge, verification and token refresh bodies."""

from pydantic import BaseModel, Field


class NonceRequest(BaseModel):
    address: str = Field(pattern=r"^0x[a-fA-F0-9]{40}$")


class VerifyRequest(BaseModel):
    """EIP-4361 message as signed by the wallet, plus the hex signature."""
    message: str = Field(min_length=1, max_length=10_000)
    signature: str = Field(min_length=1, max_length=512)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1)
