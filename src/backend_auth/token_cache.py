"""Token cache: bearer token -> verified external identity id.

Verifying a token means a round-trip (or at least a signature check plus a
JWKS lookup) against the identity provider. The cache remembers, per literal
token string, which external identity it belongs to so repeated requests with
the same token skip verification until the TTL runs out.

Cache policy:
    - Keyed by the raw token; two tokens for one identity are two entries.
    - Only successful verifications are written.
    - The TTL starts at write time; hits do not extend it.
    - Entries are never revoked, only expired.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING, Final

from .cache_stores import InMemoryCache
from .identity import VerifiedIdentity

if TYPE_CHECKING:
    from .protocols import CacheStore, IdentityProvider

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS: Final[int] = 20 * 60


class TokenCache:
    """Time-bounded token -> external id mapping in front of an IdentityProvider.

    Attributes:
        provider: Identity provider consulted on a miss. The pipeline also uses
            it for user-record lookups.
    """

    def __init__(
        self,
        provider: IdentityProvider,
        store: CacheStore | None = None,
        *,
        ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        namespace: str = "token",
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self.provider = provider
        self._store: CacheStore = store if store is not None else InMemoryCache()
        self._ttl = ttl_seconds
        self._namespace = namespace

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def _key(self, token: str) -> str:
        # Raw tokens stay out of Redis keyspace listings.
        digest = hashlib.sha256(token.encode("utf-8")).hexdigest()
        return f"{self._namespace}:{digest}"

    def lookup(self, token: str) -> str | None:
        """Return the cached external id for ``token`` without verifying."""
        cached = self._store.get(self._key(token))
        return cached if isinstance(cached, str) else None

    def resolve_identity(self, token: str) -> tuple[VerifiedIdentity, bool]:
        """Resolve ``token`` to a verified identity.

        Returns:
            ``(identity, cache_hit)``. On a hit ``identity.email`` is None.

        Raises:
            InvalidToken: The provider rejected the token. Nothing is cached.
        """
        external_id = self.lookup(token)
        if external_id is not None:
            logger.info("found token in cache. uid: %s.", external_id)
            return VerifiedIdentity(external_id=external_id), True

        identity = self.provider.verify(token)
        self._store.set(self._key(token), identity.external_id, ttl_seconds=self._ttl)
        logger.info("got token from server. uid: %s.", identity.external_id)
        return identity, False
