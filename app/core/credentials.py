"""Credential Primitives — generation, hashing and format checks for API keys, refresh tokens and nonces.

Invariants:
    - Raw secrets are never stored: only hash_secret() output reaches the database
    - API keys: "cartel_" + 32 base64url chars; prefix = the 8 chars after "cartel_"
    - Refresh tokens: "crt_ref_" + base64url(32 random bytes), opaque (not JWT)

Design Decisions:
    - secrets module over random: CSPRNG for every credential (ADR: security baseline)
    - SHA-256 without salt for keys/tokens: inputs are high-entropy random strings,
      lookup by hash must be deterministic (ADR: unique index on key_hash)
"""

import hashlib
import re
import secrets
import string

API_KEY_PREFIX = "cartel_"
REFRESH_TOKEN_PREFIX = "crt_ref_"

_API_KEY_PATTERN = re.compile(r"^cartel_[A-Za-z0-9_-]{32}$")
_NONCE_ALPHABET = string.ascii_letters + string.digits


def generate_api_key() -> str:
    # 24 random bytes encode to exactly 32 base64url chars
    return f"{API_KEY_PREFIX}{secrets.token_urlsafe(24)}"


def hash_secret(value: str) -> str:
    """SHA-256 hex digest used for API keys and refresh tokens."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def api_key_prefix(api_key: str) -> str:
    """Lookup prefix: the 8 characters following "cartel_"."""
    if not api_key.startswith(API_KEY_PREFIX):
        raise ValueError("Invalid API key format")
    return api_key[len(API_KEY_PREFIX):len(API_KEY_PREFIX) + 8]


def is_valid_api_key_format(api_key: str) -> bool:
    return bool(_API_KEY_PATTERN.match(api_key))


def mask_api_key(prefix: str) -> str:
    return f"{API_KEY_PREFIX}{prefix}..."


def generate_refresh_token() -> str:
    return f"{REFRESH_TOKEN_PREFIX}{secrets.token_urlsafe(32)}"


def generate_nonce(length: int = 16) -> str:
    """Alphanumeric nonce for SIWE challenges."""
    return "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(length))
