"""
JWKS key provider.

Resolves JWT signing keys from an identity provider's JWKS endpoint with
per-kid caching, negative caching and refresh throttling. Works for any
issuer publishing a JWKS document (Firebase secure tokens, Auth0, ...).
"""

from __future__ import annotations

import logging
from typing import Any, Final

from jwt import PyJWK, PyJWKClient

from ..cache_stores import InMemoryCache
from ..errors import InvalidToken
from ..protocols import CacheStore, KeyProvider
from ..refresh_gate import RefreshGate

logger = logging.getLogger(__name__)

FIREBASE_JWKS_URL: Final[str] = (
    "https://www.googleapis.com/service_accounts/v1/jwk/"
    "securetoken@system.gserviceaccount.com"
)
"""JWKS document signing Firebase ID tokens."""


def jwks_url_for_issuer(issuer: str) -> str:
    """Derive the conventional ``.well-known/jwks.json`` URL of an issuer."""
    if not issuer.endswith("/"):
        issuer = f"{issuer}/"
    return f"{issuer}.well-known/jwks.json"


class JWKSKeyProvider(KeyProvider):
    """
    Resolves signing keys for a ``kid`` from a JWKS endpoint.

    Resolution Strategy
    -------------------
    1) Negative cache: a kid recently found missing fails immediately.
    2) Positive cache: a cached key is returned without network access.
    3) Normal resolution through ``PyJWKClient.get_signing_key``.
    4) On failure, the kid is negative-cached and, if the RefreshGate
       allows, the JWKS set is force-refreshed and resolution retried once.
    5) Raises InvalidToken if the key still cannot be resolved.

    Keys are cached as their JWK dict so a RedisCache can hold them.

    Parameters
    ----------
    jwks_url : str
        JWKS document URL.
    cache : CacheStore
        Cache for resolved keys. Defaults to an InMemoryCache.
    ttl_seconds : int
        TTL for resolved signing keys.
    missing_ttl_seconds : int
        TTL for negative cache entries (unknown kids).
    min_interval : float
        Minimum interval between forced JWKS refreshes.
    timeout : float
        Socket timeout for JWKS fetches.
    """

    def __init__(
        self,
        jwks_url: str,
        cache: CacheStore | None = None,
        ttl_seconds: int = 600,
        missing_ttl_seconds: int = 30,
        min_interval: float = 60.0,
        alert_threshold: int = 40,
        timeout: float = 5.0,
        gate: RefreshGate | None = None,
    ) -> None:
        self._ttl = ttl_seconds
        self._missing_ttl = missing_ttl_seconds
        self._cache: CacheStore = cache if cache is not None else InMemoryCache()
        self._gate = gate or RefreshGate(
            min_interval=min_interval, alert_threshold=alert_threshold
        )
        self._client = PyJWKClient(
            jwks_url,
            cache_jwk_set=True,
            lifespan=ttl_seconds,
            timeout=timeout,
        )

    @classmethod
    def for_issuer(cls, issuer: str, **kwargs: Any) -> JWKSKeyProvider:
        """Build a provider for an issuer publishing ``.well-known/jwks.json``."""
        return cls(jwks_url_for_issuer(issuer), **kwargs)

    @staticmethod
    def _cache_key(kid: str) -> str:
        return f"jwk:{kid}"

    def _remember(self, jwk: PyJWK, kid: str) -> PyJWK:
        self._cache.set(
            self._cache_key(kid),
            jwk._jwk_data,  # pyright: ignore[reportPrivateUsage]
            ttl_seconds=self._ttl,
        )
        return jwk

    def get_key_for_token(self, kid: str) -> PyJWK:
        cache_key = self._cache_key(kid)

        if self._cache.is_missing(cache_key):
            raise InvalidToken("Unknown kid (cached)")

        cached = self._cache.get(cache_key)
        if cached is not None:
            return PyJWK.from_dict(cached)

        try:
            return self._remember(self._client.get_signing_key(kid), kid)
        except Exception:
            logger.info("Signing key %s not found in JWKS, trying forced refresh", kid)
            self._cache.set_missing(cache_key, ttl_seconds=self._missing_ttl)

        if not self._gate.allow():
            raise InvalidToken("Key refresh throttled")

        try:
            self._client.get_signing_keys(refresh=True)
            jwk = self._client.get_signing_key(kid)
        except Exception as e:
            self._cache.set_missing(cache_key, ttl_seconds=self._missing_ttl)
            raise InvalidToken("Unable to resolve signing key") from e

        return self._remember(jwk, kid)
