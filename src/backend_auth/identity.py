"""Identity provider: verified external identities and user records.

``JWTIdentityProvider`` implements the IdentityProvider protocol on top of a
TokenVerifier (signature + claims) and an optional UserDirectory (user-record
lookup by external id). The pipeline never sees claims, only the
VerifiedIdentity produced here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import httpx

from .errors import AuthError, IdentityLookupFailed, InvalidToken

if TYPE_CHECKING:
    from .protocols import TokenVerifier, UserDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class VerifiedIdentity:
    """Identity vouched for by the identity provider.

    Attributes:
        external_id: Provider-assigned user id (the ``sub`` claim).
        email: Email from the token, or None when unknown (e.g. on a token
            cache hit).
    """

    external_id: str
    email: str | None = None


class JWTIdentityProvider:
    """IdentityProvider backed by JWT verification and a user directory.

    Example:
        ```python
        provider = JWTIdentityProvider(
            verifier=JWTVerifier(keys, options),
            directory=HttpUserDirectory("https://users.internal/api/users"),
        )
        identity = provider.verify(raw_token)
        email = provider.get_user_email(identity.external_id)
        ```
    """

    def __init__(
        self,
        verifier: TokenVerifier,
        directory: UserDirectory | None = None,
        *,
        subject_claim: str = "sub",
        email_claim: str = "email",
    ) -> None:
        self._verifier = verifier
        self._directory = directory
        self._subject_claim = subject_claim
        self._email_claim = email_claim

    def verify(self, token: str) -> VerifiedIdentity:
        """Verify ``token`` and return the identity it carries.

        Raises:
            InvalidToken: If verification fails or the subject claim is unusable.
        """
        claims = self._verifier.verify(token)

        subject = claims.get(self._subject_claim)
        if not isinstance(subject, str) or not subject:
            raise InvalidToken(f"Token has no usable '{self._subject_claim}' claim")

        email = claims.get(self._email_claim)
        return VerifiedIdentity(
            external_id=subject,
            email=email if isinstance(email, str) and email else None,
        )

    def get_user_email(self, external_id: str) -> str:
        """Return the email on the user record for ``external_id``.

        Raises:
            IdentityLookupFailed: No directory configured, or the lookup failed.
        """
        if self._directory is None:
            raise IdentityLookupFailed("no user directory configured")

        try:
            return self._directory.get_user_email(external_id)
        except AuthError:
            raise
        except Exception as e:
            raise IdentityLookupFailed(str(e)) from e


class HttpUserDirectory:
    """User directory reached over HTTP.

    Issues ``GET <base_url>/<external_id>`` and reads ``email`` from the JSON
    body. The request carries the service credential as a bearer token.

    Attributes:
        _base_url: Collection URL of the user records.
        _client: httpx client carrying the timeout and auth header.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 5.0,
        client: httpx.Client | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url cannot be empty")

        self._base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(timeout=timeout, headers=headers)

    def close(self) -> None:
        self._client.close()

    def get_user_email(self, external_id: str) -> str:
        """Fetch the user record and return its email.

        Raises:
            IdentityLookupFailed: Transport error, non-2xx status, or a record
                without an email.
        """
        url = f"{self._base_url}/{quote(external_id, safe='')}"

        try:
            response = self._client.get(url)
            response.raise_for_status()
            payload: Any = response.json()
        except httpx.HTTPStatusError as e:
            raise IdentityLookupFailed(
                f"user record lookup returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise IdentityLookupFailed(f"user record lookup failed: {e}") from e
        except ValueError as e:
            raise IdentityLookupFailed("user record is not valid JSON") from e

        email = payload.get("email") if isinstance(payload, dict) else None
        if not isinstance(email, str) or not email:
            raise IdentityLookupFailed("user record has no email")

        logger.debug("Fetched user record for %s", external_id)
        return email
