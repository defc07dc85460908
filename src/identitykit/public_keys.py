"""Public key fetcher and cache — fetches ID token signing keys from the issuer.

Features:
- Accepts either an X.509 certificate map ({kid: PEM}) or a JWKS document
- Cache expiry taken from the response's Cache-Control max-age
- Auto-refresh on unknown kid (key rotation), rate-limited
- Copy-on-refresh: a refresh swaps in a new immutable snapshot
- Async-safe via asyncio.Lock
"""

import asyncio
import logging
import re
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from cryptography.x509 import load_pem_x509_certificate
from jwt import PyJWK

from identitykit.errors import RemoteServiceError
from identitykit.http import IdentityHttpClient

logger = logging.getLogger("identitykit.public_keys")

_MAX_AGE_RE = re.compile(r"max-age=(\d+)")


@dataclass(frozen=True)
class CachedKeys:
    """Immutable snapshot of the issuer's public keys."""

    keys: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    expires_at: float = 0.0

    def is_stale(self, now: float) -> bool:
        return now >= self.expires_at


def parse_max_age(cache_control: str | None) -> float | None:
    """Extract max-age (seconds) from a Cache-Control header value."""
    if not cache_control:
        return None
    match = _MAX_AGE_RE.search(cache_control)
    return float(match.group(1)) if match else None


def parse_public_keys(data: Any) -> dict[str, Any]:
    """Load public keys from a JWKS document or an X.509 certificate map.

    Malformed entries are skipped with a warning.
    """
    keys: dict[str, Any] = {}
    if not isinstance(data, dict):
        return keys

    if isinstance(data.get("keys"), list):
        for key_data in data["keys"]:
            kid = key_data.get("kid") if isinstance(key_data, dict) else None
            if not kid:
                continue
            try:
                keys[kid] = PyJWK(key_data).key
            except Exception:
                logger.warning("Failed to parse JWK with kid=%s", kid)
        return keys

    for kid, cert in data.items():
        try:
            public_key = load_pem_x509_certificate(cert.encode("utf-8")).public_key()
        except (ValueError, AttributeError):
            logger.warning("Failed to parse certificate with kid=%s", kid)
            continue
        if isinstance(public_key, RSAPublicKey):
            keys[kid] = public_key
    return keys


class PublicKeyFetcher:
    """Fetches and caches public keys used to verify ID tokens.

    Args:
        keys_url: URL of the certificate map or JWKS endpoint.
        http: Client used to fetch the keys (unauthenticated).
        default_ttl: Cache lifetime when the response carries no max-age (default 3600).
        min_refetch_interval: Minimum seconds between forced refreshes for unknown kids
            (default 30).
        clock: Monotonic clock (tests override this).
    """

    def __init__(
        self,
        keys_url: str,
        http: IdentityHttpClient,
        *,
        default_ttl: float = 3600.0,
        min_refetch_interval: float = 30.0,
        clock=time.monotonic,
    ) -> None:
        self._keys_url = keys_url
        self._http = http
        self._default_ttl = default_ttl
        self._min_refetch_interval = min_refetch_interval
        self._clock = clock
        self._cache = CachedKeys()
        self._lock = asyncio.Lock()
        self._last_forced_fetch: float | None = None

    @property
    def cached(self) -> CachedKeys:
        return self._cache

    async def get_key(self, kid: str, *, cancel: asyncio.Event | None = None) -> Any | None:
        """Get a public key by kid.

        Refreshes when the cache is stale, and forces one refresh when the kid is
        unknown (key rotation), at most once per ``min_refetch_interval``.

        Raises:
            RemoteServiceError: If the keys cannot be fetched.
        """
        cache = self._cache
        if not cache.is_stale(self._clock()):
            key = cache.keys.get(kid)
            if key is not None:
                return key
            if not self._may_force_refresh():
                return None
            await self._refresh(force=True, cancel=cancel)
        else:
            await self._refresh(force=False, cancel=cancel)
        return self._cache.keys.get(kid)

    def _may_force_refresh(self) -> bool:
        if self._last_forced_fetch is None:
            return True
        return (self._clock() - self._last_forced_fetch) >= self._min_refetch_interval

    async def _refresh(self, *, force: bool, cancel: asyncio.Event | None) -> None:
        seen = self._cache
        async with self._lock:
            if self._cache is not seen:
                # Another caller refreshed while we waited for the lock.
                return
            if force:
                self._last_forced_fetch = self._clock()
            self._cache = await self._fetch(cancel=cancel)

    async def _fetch(self, *, cancel: asyncio.Event | None) -> CachedKeys:
        """Fetch the keys and build a new snapshot."""
        try:
            response = await self._http.request("GET", self._keys_url, cancel=cancel)
            data = response.json()
        except RemoteServiceError as e:
            logger.warning("Failed to fetch public keys from %s: %s", self._keys_url, e.message)
            raise RemoteServiceError(
                f"Failed to fetch public keys: {e.message}",
                "certificate_fetch_failed",
                status_code=e.status_code,
                retryable=e.retryable,
            ) from e
        except ValueError as e:
            raise RemoteServiceError(
                "Public key endpoint returned invalid JSON", "certificate_fetch_failed",
            ) from e

        keys = parse_public_keys(data)
        max_age = parse_max_age(response.headers.get("cache-control"))
        ttl = max_age if max_age is not None else self._default_ttl
        logger.debug("Public keys refreshed: %d keys loaded, ttl=%ss", len(keys), ttl)
        return CachedKeys(keys=MappingProxyType(keys), expires_at=self._clock() + ttl)
