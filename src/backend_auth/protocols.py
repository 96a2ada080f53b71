"""Protocol definitions for the authentication pipeline.

This module defines structural interfaces using Protocol (PEP 544) for:
- Token verification (JWT signature + claims)
- Signing key resolution
- TTL caching
- Identity providers and user directories
- Principal stores

Using protocols keeps every collaborator swappable in tests: a fake identity
provider or an in-memory principal store satisfies the same interface as the
production implementation without inheriting from it.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from jwt import PyJWK

    from .identity import VerifiedIdentity
    from .principals import Principal, RequestContext

# ============================================================================
# Type Aliases
# ============================================================================

type Claims = Mapping[str, Any]
"""Decoded JWT payload as an immutable mapping."""

type ViewFunc = Callable[..., Any]
"""Flask view function (any args, any return)."""


# ============================================================================
# Core Protocols
# ============================================================================


class TokenVerifier(Protocol):
    """Validates a JWT's structure and signature and returns its claims."""

    def verify(self, token: str) -> Claims:
        """Verify a JWT and return its decoded claims.

        Raises:
            InvalidToken: Token is malformed, signature invalid, or claims invalid
            ExpiredToken: Token's exp claim has passed
        """
        ...


class KeyProvider(Protocol):
    """Resolves JWT signing keys by key id (``kid``)."""

    def get_key_for_token(self, kid: str) -> PyJWK:
        """Resolve a signing key by its ID.

        Raises:
            InvalidToken: If kid cannot be resolved.
        """
        ...


class CacheStore(Protocol):
    """TTL key/value store shared by the token, principal and key caches.

    Values must be JSON-serialisable so distributed stores can hold them.
    Implementations must be safe for concurrent use: each operation is atomic
    on its own, nothing spans more than one call.
    """

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent, expired or known-missing."""
        ...

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store ``value`` under ``key``; the TTL restarts on every write."""
        ...

    def set_missing(self, key: str, ttl_seconds: int) -> None:
        """Mark ``key`` as looked-up-but-missing (negative caching)."""
        ...

    def is_missing(self, key: str) -> bool:
        """True if ``key`` is currently marked missing."""
        ...

    def delete(self, key: str) -> None:
        """Drop ``key`` if present."""
        ...

    def clear(self) -> None:
        """Drop every entry owned by this store."""
        ...


class IdentityProvider(Protocol):
    """External identity service: verifies tokens and serves user records.

    The provider is a black box with latency and failure modes; the pipeline
    only ever talks to it through these two calls.
    """

    def verify(self, token: str) -> VerifiedIdentity:
        """Validate a bearer token.

        Raises:
            InvalidToken: Token rejected (expired, malformed, bad signature).
        """
        ...

    def get_user_email(self, external_id: str) -> str:
        """Fetch the email of the user record for ``external_id``.

        Raises:
            IdentityLookupFailed: Lookup failed or the record has no email.
        """
        ...


class UserDirectory(Protocol):
    """User-record lookup backing ``IdentityProvider.get_user_email``."""

    def get_user_email(self, external_id: str) -> str: ...


class PrincipalStore(Protocol):
    """Maps an email to an internal principal for one request context."""

    def resolve_principal(
        self, external_id: str, email: str, context: RequestContext
    ) -> Principal:
        """Look up the principal for ``email``.

        Returns a principal with ``id == 0`` when no row matches.

        Raises:
            PrincipalLookupFailed: The store query failed.
        """
        ...
