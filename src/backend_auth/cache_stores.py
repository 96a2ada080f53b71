"""Cache store implementations backing the token, principal and key caches.

This module provides implementations of the CacheStore protocol:
- InMemoryCache: In-process, lock-protected dict (single instance / tests)
- RedisCache: Distributed caching via Redis (multi-instance production)

Both implementations support:
- TTL-based expiration (the TTL restarts on every write, never on read)
- Negative caching (remembering missing keys to avoid repeated lookups)
- Thread-safe operations

Values must be JSON-serialisable. The in-memory store keeps them as-is, the
Redis store round-trips them through ``json``.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Final

logger = logging.getLogger(__name__)

_MISSING_MARKER: Final[str] = "__missing__"
"""JSON key flagging a negative-cache entry in Redis."""


@dataclass(slots=True)
class _CacheItem:
    """Internal cache entry with TTL tracking.

    Attributes:
        value: Cached value, or None if the key is known-missing.
        expires_at: Unix timestamp when this entry should be considered expired.
    """

    value: Any | None  # None means "known-missing" (negative cache)
    expires_at: float


class InMemoryCache:
    """In-process TTL cache guarded by a single lock.

    Every request thread shares one instance, so all access to the backing
    dict goes through ``_lock``. Expired entries are removed lazily on access.

    Example:
        ```python
        cache = InMemoryCache()
        cache.set("tok-1", "ext-42", ttl_seconds=1200)
        cache.get("tok-1")  # "ext-42"

        cache.set_missing("bad-kid", ttl_seconds=30)
        assert cache.is_missing("bad-kid") is True
        ```
    """

    def __init__(self) -> None:
        self._store: dict[str, _CacheItem] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        now = time.time()
        with self._lock:
            return sum(1 for item in self._store.values() if now < item.expires_at)

    def _live_item(self, key: str) -> _CacheItem | None:
        # caller holds the lock
        item = self._store.get(key)
        if item is None:
            return None

        if time.time() >= item.expires_at:
            self._store.pop(key, None)
            return None

        return item

    def get(self, key: str) -> Any | None:
        """Return the cached value for ``key``.

        Returns None for "not cached", "expired" and "cached as missing". Use
        is_missing() to tell the last case apart.
        """
        with self._lock:
            item = self._live_item(key)
            return item.value if item else None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Cache ``value`` for ``ttl_seconds``.

        Raises:
            ValueError: If value is None (use set_missing instead) or the TTL
                is not positive.
        """
        if value is None:
            raise ValueError("Cannot cache None; use set_missing() for negative entries")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        with self._lock:
            self._store[key] = _CacheItem(value=value, expires_at=time.time() + ttl_seconds)

    def set_missing(self, key: str, ttl_seconds: int) -> None:
        """Mark ``key`` as missing (negative caching)."""
        with self._lock:
            self._store[key] = _CacheItem(value=None, expires_at=time.time() + ttl_seconds)

    def is_missing(self, key: str) -> bool:
        """True if ``key`` is cached as missing and not expired."""
        with self._lock:
            item = self._live_item(key)
            return item is not None and item.value is None

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


class RedisCache:
    """Redis-backed distributed TTL cache.

    Values are stored as JSON under ``<prefix><key>`` using ``SETEX`` so Redis
    handles expiry natively. Redis commands are atomic, so no client-side
    locking is needed.

    Storage Format:
        - Values: ``{"value": <json>}``
        - Missing keys: ``{"__missing__": true}``

    Example:
        ```python
        import redis

        client = redis.Redis.from_url("redis://localhost:6379/0", decode_responses=True)
        cache = RedisCache(client, prefix="orders:auth:")
        cache.set("tok-1", "ext-42", ttl_seconds=1200)
        ```
    """

    def __init__(self, redis_client: Any, prefix: str = "backend_auth:") -> None:
        """Initialize Redis cache.

        Args:
            redis_client: Redis client instance (redis-py or compatible).
                Must support get(), setex(), delete() and scan_iter().
            prefix: Namespace prepended to every key. Must be non-empty so
                clear() never touches keys owned by someone else.

        Raises:
            ValueError: If prefix is empty.
        """
        if not prefix:
            raise ValueError("prefix cannot be empty")
        self._client = redis_client
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _load(self, key: str) -> dict[str, Any] | None:
        data = self._client.get(self._key(key))
        if data is None:
            return None

        try:
            obj = json.loads(data)
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise RuntimeError(f"Failed to deserialize cached value for {key!r}") from e

        if not isinstance(obj, dict):
            raise RuntimeError(f"Unexpected cached payload for {key!r}")
        return obj

    def get(self, key: str) -> Any | None:
        """Return the cached value for ``key``.

        Raises:
            RuntimeError: If the stored payload is corrupted.
        """
        obj = self._load(key)
        if obj is None or obj.get(_MISSING_MARKER) is True:
            return None
        return obj.get("value")

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Cache ``value`` for ``ttl_seconds``.

        Raises:
            ValueError: If value is None or the TTL is not positive.
            RuntimeError: If the Redis operation fails.
        """
        if value is None:
            raise ValueError("Cannot cache None; use set_missing() for negative entries")
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        try:
            self._client.setex(self._key(key), ttl_seconds, json.dumps({"value": value}))
        except Exception as e:
            raise RuntimeError("Failed to cache value in Redis") from e

    def set_missing(self, key: str, ttl_seconds: int) -> None:
        try:
            self._client.setex(
                self._key(key),
                ttl_seconds,
                json.dumps({_MISSING_MARKER: True}),
            )
        except Exception as e:
            raise RuntimeError("Failed to cache missing key in Redis") from e

    def is_missing(self, key: str) -> bool:
        """True if ``key`` is cached as missing.

        Corrupted payloads count as "not missing".
        """
        try:
            obj = self._load(key)
        except RuntimeError:
            logger.warning("Corrupted cache entry for key %s", key)
            return False
        return obj is not None and obj.get(_MISSING_MARKER) is True

    def delete(self, key: str) -> None:
        self._client.delete(self._key(key))

    def clear(self) -> None:
        keys = list(self._client.scan_iter(match=f"{self._prefix}*"))
        if keys:
            self._client.delete(*keys)
