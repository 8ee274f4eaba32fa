"""ENS Resolver — reverse-resolves wallet addresses to an ENS name and avatar.

Invariants:
    - resolve() never raises: RPC failures are logged and yield None
    - Results, failures included, are cached per lowercased address for ttl_seconds (1 hour)
    - Non-addresses and a resolver without an RPC URL return None without a lookup
    - The avatar is only looked up when the address has a primary name

Design Decisions:
    - web3.py AsyncWeb3 + AsyncHTTPProvider: the reverse record and the "avatar" text
      record come from the ENS registry contracts, which needs a JSON-RPC endpoint
    - lookup injectable: tests pass a coroutine and never touch the network
      (ADR: no patching of module globals)
    - None (lookup failed) is distinct from ENSProfile(None, None) (no ENS name):
      callers keep stored values on failure and clear them when the name is gone
"""

import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from web3 import AsyncHTTPProvider, AsyncWeb3

from app.config import get_settings

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600


@dataclass(frozen=True)
class ENSProfile:
    name: str | None
    avatar: str | None


class ENSResolver:
    """Reverse resolution with an in-process TTL cache."""

    def __init__(
        self,
        rpc_url: str | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        lookup: Callable[[str], Awaitable[ENSProfile]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._rpc_url = rpc_url
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[float, ENSProfile | None]] = {}
        self._w3: AsyncWeb3 | None = None
        if lookup is not None:
            self._lookup = lookup
        elif rpc_url:
            self._lookup = self._web3_lookup
        else:
            self._lookup = None

    async def resolve(self, address: str) -> ENSProfile | None:
        if self._lookup is None or not AsyncWeb3.is_address(address):
            return None
        key = address.lower()
        now = self._clock()
        cached = self._cache.get(key)
        if cached is not None and now - cached[0] < self._ttl:
            return cached[1]

        try:
            profile = await self._lookup(key)
        except Exception as e:
            logger.warning(
                f"ENS lookup failed for {key}: {e}", extra={"address": key},
            )
            profile = None
        self._cache[key] = (now, profile)
        return profile

    def clear(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def _web3_lookup(self, address: str) -> ENSProfile:
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncHTTPProvider(self._rpc_url))
        name = await self._w3.ens.name(AsyncWeb3.to_checksum_address(address))
        if not name:
            return ENSProfile(name=None, avatar=None)

        avatar = None
        try:
            avatar = await self._w3.ens.get_text(name, "avatar")
        except Exception as e:
            logger.warning(f"ENS avatar lookup failed for {name}: {e}")
        return ENSProfile(name=name, avatar=avatar or None)


_resolver: ENSResolver | None = None


def get_ens_resolver() -> ENSResolver:
    global _resolver
    if _resolver is None:
        settings = get_settings()
        _resolver = ENSResolver(
            settings.eth_rpc_url, ttl_seconds=settings.ens_cache_ttl_seconds,
        )
    return _resolver


def set_ens_resolver(resolver: ENSResolver | None) -> None:
    global _resolver
    _resolver = resolver
