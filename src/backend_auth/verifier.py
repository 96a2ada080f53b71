"""JWT verification using PyJWT.

JWTVerifier is the cryptographic half of the identity provider: it reads the
``kid`` from the unverified header, resolves the signing key through a
KeyProvider and lets PyJWT check signature, expiry, issuer and audience.
PyJWT exceptions are mapped to the domain's InvalidToken / ExpiredToken.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import jwt

from .errors import AuthError, ExpiredToken, InvalidToken
from .protocols import Claims

if TYPE_CHECKING:
    from jwt import PyJWK

    from .protocols import KeyProvider


@dataclass(frozen=True, slots=True)
class JWTVerifyOptions:
    """Validation rules for incoming tokens.

    Attributes:
        issuer: Expected ``iss`` claim. For Firebase this is
            ``https://securetoken.google.com/<project-id>``. None disables the
            check (not recommended outside tests).
        audience: Expected ``aud`` claim (the Firebase project id, or the API
            identifier for Auth0). None disables the check.
        algorithms: Explicit allowlist of signing algorithms.
        leeway: Clock skew tolerance in seconds for exp/nbf/iat.
        required_claims: Claims that must be present in the payload.
    """

    issuer: str | None
    audience: str | None
    algorithms: tuple[str, ...] = ("RS256",)
    leeway: int = 0
    required_claims: tuple[str, ...] = ("exp", "sub")


class JWTVerifier:
    """Provider-agnostic JWT verification using PyJWT.

    Thread-safe as long as the KeyProvider is; the options are frozen.

    Example:
        ```python
        verifier = JWTVerifier(
            key_provider=JWKSKeyProvider(FIREBASE_JWKS_URL),
            options=JWTVerifyOptions(
                issuer="https://securetoken.google.com/my-project",
                audience="my-project",
            ),
        )
        claims = verifier.verify(raw_token)
        ```
    """

    def __init__(self, key_provider: KeyProvider, options: JWTVerifyOptions) -> None:
        self._key_provider = key_provider
        self._options = options

    def _signing_key(self, token: str) -> PyJWK:
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except jwt.InvalidTokenError as e:
            raise InvalidToken(f"Malformed token header: {e}") from e

        if not isinstance(kid, str) or not kid:
            raise InvalidToken("Token header has no usable 'kid'")

        try:
            return self._key_provider.get_key_for_token(kid)
        except AuthError:
            raise
        except Exception as e:
            raise InvalidToken(f"Signing key lookup failed: {e}") from e

    def verify(self, token: str) -> Claims:
        """Check signature and claims of ``token`` and return its payload.

        The unverified header is read only to pick the signing key.

        Raises:
            ExpiredToken: ``exp`` has passed.
            InvalidToken: Anything else wrong with the token or its key.
        """
        key = self._signing_key(token)
        opts = self._options

        try:
            return jwt.decode(
                token,
                key,
                algorithms=list(opts.algorithms),
                audience=opts.audience,
                issuer=opts.issuer,
                leeway=opts.leeway,
                options={"require": list(opts.required_claims)},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidToken(f"Token rejected: {e}") from e
