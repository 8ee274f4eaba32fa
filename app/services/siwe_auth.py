"""SIWE Authentication — nonce challenges and signature verification for wallet sign-in.

Invariants:
    - Nonces are stored per lowercased address and expire after nonce_ttl_seconds (5 min)
    - A nonce is consumed only after the signature checks out
    - Without a client API key a stored nonce is mandatory; with one, a stored nonce
      (if any) must still match
    - The recovered signer must equal the message address (case-insensitive)

Design Decisions:
    - In-memory NonceStore: challenges are short-lived and single-process
      (ADR: same trade-off as the rate limiter, lost on restart)
    - eth_account for ecrecover: battle-tested EIP-191 implementation, no web3 stack
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

from eth_account import Account
from eth_account.messages import encode_defunct

from app.core.credentials import generate_nonce
from app.core.domain_types import utc_now
from app.core.errors import AuthenticationError, ValidationFailedError
from app.core.siwe_message import (
    SiweMessage, SiweMessageError, origin_allowed, parse_siwe_message, validity_error,
)

logger = logging.getLogger(__name__)

NONCE_LENGTH = 16


@dataclass
class _NonceEntry:
    nonce: str
    expires_at: float


class NonceStore:
    """Pending SIWE nonces keyed by lowercased address."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _NonceEntry] = {}

    def issue(self, address: str) -> str:
        self._prune()
        nonce = generate_nonce(NONCE_LENGTH)
        self._entries[address.lower()] = _NonceEntry(
            nonce=nonce, expires_at=self._clock() + self.ttl_seconds,
        )
        return nonce

    def get(self, address: str) -> str | None:
        entry = self._entries.get(address.lower())
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[address.lower()]
            return None
        return entry.nonce

    def consume(self, address: str) -> None:
        self._entries.pop(address.lower(), None)

    def clear(self) -> None:
        self._entries.clear()

    def _prune(self) -> None:
        now = self._clock()
        for key in [k for k, e in self._entries.items() if e.expires_at <= now]:
            del self._entries[key]


_nonce_store: NonceStore | None = None


def get_nonce_store() -> NonceStore:
    global _nonce_store
    if _nonce_store is None:
        from app.config import get_settings
        _nonce_store = NonceStore(get_settings().nonce_ttl_seconds)
    return _nonce_store


def recover_signer(message: str, signature: str) -> str | None:
    """EIP-191 personal_sign recovery. None if the signature is malformed."""
    try:
        return Account.recover_message(
            encode_defunct(text=message), signature=signature,
        )
    except Exception as e:
        # eth_keys raises its own BadSignature/ValidationError alongside ValueError
        logger.debug(f"Signature recovery failed: {e}")
        return None


def verify_siwe(
    message_text: str,
    signature: str,
    allowed_origins: list[str],
    nonce_store: NonceStore,
    require_stored_nonce: bool,
) -> SiweMessage:
    """Run every SIWE check and consume the nonce. Returns the parsed message.

    Raises ValidationFailedError (400) for message problems and
    AuthenticationError (401) for a signature that does not match.
    """
    try:
        message = parse_siwe_message(message_text)
    except SiweMessageError as e:
        raise ValidationFailedError(f"Invalid SIWE message: {e}", field="message") from e

    if not origin_allowed(message, allowed_origins):
        logger.warning(f"SIWE domain not allowed: {message.domain}")
        raise ValidationFailedError("Domain not allowed", field="message")

    reason = validity_error(message, utc_now())
    if reason:
        raise ValidationFailedError(reason, field="message")

    stored = nonce_store.get(message.address)
    if stored is None and require_stored_nonce:
        raise ValidationFailedError("Invalid or expired nonce", field="message")
    if stored is not None and stored != message.nonce:
        raise ValidationFailedError("Invalid or expired nonce", field="message")

    signer = recover_signer(message_text, signature)
    if signer is None or signer.lower() != message.address.lower():
        raise AuthenticationError("Invalid signature", "INVALID_SIGNATURE")

    nonce_store.consume(message.address)
    return message
