"""
Key provider implementations for resolving JWT signing keys.

This package contains implementations of the KeyProvider protocol.
"""

from .jwks import FIREBASE_JWKS_URL, JWKSKeyProvider, jwks_url_for_issuer

__all__ = ["FIREBASE_JWKS_URL", "JWKSKeyProvider", "jwks_url_for_issuer"]
