"""Authentication and authorization errors.

This module defines the exception hierarchy for the authentication pipeline.
All errors inherit from AuthError so the Flask glue can translate any of them
into an HTTP response with a single ``except`` clause.

Every error carries:
    - ``status_code``: HTTP status returned to the client (401 or 500).
    - ``description``: JSON-safe message placed in ``{"error": ...}``.
"""

from __future__ import annotations

from typing import ClassVar


class AuthError(Exception):
    """Base exception for all authentication and authorization failures.

    Attributes:
        status_code: HTTP status code for the failure.
        description: Client-facing message.
    """

    status_code: ClassVar[int] = 401
    default_description: ClassVar[str] = "Authentication Error"

    def __init__(self, description: str | None = None) -> None:
        self.description = description or self.default_description
        super().__init__(self.description)


def _with_service(message: str, service_name: str | None) -> str:
    if service_name:
        return f"{message} ({service_name})"
    return message


class MissingToken(AuthError):  # noqa: N818
    """Raised when no bearer token is present in the request.

    This occurs when:
    - The Authorization header is missing
    - The header holds nothing but the ``Bearer`` prefix and whitespace

    The pipeline aborts before performing any I/O.
    """

    @classmethod
    def for_service(cls, service_name: str | None = None) -> MissingToken:
        return cls(
            _with_service(
                "Authentication Error - No id token found for this request",
                service_name,
            )
        )


class InvalidToken(AuthError):  # noqa: N818
    """Raised when the identity provider rejects a token.

    This occurs when:
    - Token is malformed (not a valid JWT structure)
    - Signature verification fails
    - Issuer or audience don't match
    - Signing key (kid) cannot be resolved

    Nothing is written to the token cache.
    """

    @classmethod
    def for_service(cls, reason: object, service_name: str | None = None) -> InvalidToken:
        return cls(
            _with_service(
                f"Authentication Error - Token not verified, err: {reason}",
                service_name,
            )
        )


class ExpiredToken(InvalidToken):  # noqa: N818
    """Raised when a token's ``exp`` claim has passed.

    Treated like InvalidToken by the pipeline; kept apart for log clarity.
    """


class IdentityLookupFailed(AuthError):  # noqa: N818
    """Raised when the identity provider's user-record lookup fails.

    The failure is upstream, so the client gets a 500.
    """

    status_code: ClassVar[int] = 500

    @classmethod
    def for_service(
        cls, reason: object, service_name: str | None = None
    ) -> IdentityLookupFailed:
        return cls(
            _with_service(
                f"Authentication Error - User record not found: {reason}",
                service_name,
            )
        )


class PrincipalNotFound(AuthError):  # noqa: N818
    """Raised when no principal row matches the identity's email.

    The negative result is cached by the pipeline before this is raised.
    """

    default_description: ClassVar[str] = "Authentication Error. User not found."


class PrincipalLookupFailed(AuthError):  # noqa: N818
    """Raised when the principal store query errors (connectivity, schema).

    Nothing is cached.
    """

    status_code: ClassVar[int] = 500
    default_description: ClassVar[str] = (
        "Authentication Error - Principal lookup failed"
    )

    @classmethod
    def for_service(cls, service_name: str | None = None) -> PrincipalLookupFailed:
        return cls(_with_service(cls.default_description, service_name))


class InsufficientPermissions(AuthError):  # noqa: N818
    """Raised by the admin guard when the request has no admin principal."""

    default_description: ClassVar[str] = (
        "Authentication Error. No sufficient permissions."
    )
