"""Principal cache: external identity id -> resolved principal.

Two independent namespaces exist, one per RequestContext, so the same
external id can map to a consumer in one and to a back-office user in the
other. Negative results (``id == 0``) are cached like positive ones.

Eviction policy: every entry expires ``ttl_seconds`` after it was written.
The cache is not cleared when the token cache is written; a principal whose
role changes in the store is picked up once its entry expires, or at once via
``invalidate``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from .cache_stores import InMemoryCache
from .principals import Principal, RequestContext, principal_from_dict

if TYPE_CHECKING:
    from .protocols import CacheStore

logger = logging.getLogger(__name__)

DEFAULT_PRINCIPAL_TTL_SECONDS: Final[int] = 20 * 60


class PrincipalCache:
    def __init__(
        self,
        store: CacheStore | None = None,
        *,
        ttl_seconds: int = DEFAULT_PRINCIPAL_TTL_SECONDS,
        namespace: str = "principal",
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self._store: CacheStore = store if store is not None else InMemoryCache()
        self._ttl = ttl_seconds
        self._namespace = namespace

    @property
    def ttl_seconds(self) -> int:
        return self._ttl

    def _key(self, external_id: str, context: RequestContext) -> str:
        return f"{self._namespace}:{context.value}:{external_id}"

    def get(
        self, external_id: str, context: RequestContext
    ) -> tuple[Principal | None, bool]:
        """Return ``(principal, found)``; never touches the principal store.

        A corrupted entry is dropped and reported as a miss.
        """
        key = self._key(external_id, context)
        try:
            raw = self._store.get(key)
            if raw is None:
                return None, False
            return principal_from_dict(context, raw), True
        except (RuntimeError, TypeError, ValueError, AttributeError):
            logger.warning("Dropping corrupted principal cache entry %s", key)
            self._store.delete(key)
            return None, False

    def put(self, external_id: str, context: RequestContext, principal: Principal) -> None:
        """Cache ``principal``; its variant must match ``context``.

        Raises:
            ValueError: On a context / variant mismatch.
        """
        if principal.context is not context:
            raise ValueError(
                f"Cannot cache a {principal.context.value} principal under {context.value}"
            )
        self._store.set(
            self._key(external_id, context), principal.to_dict(), ttl_seconds=self._ttl
        )

    def invalidate(self, external_id: str, context: RequestContext) -> None:
        self._store.delete(self._key(external_id, context))

    def clear(self) -> None:
        self._store.clear()
