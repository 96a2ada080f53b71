"""Per-request authentication state.

``RequestAuthState`` is created once per request, filled in by the pipeline
stages and read by handlers, the admin guard and the log formatter. It never
outlives its request.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .principals import BackofficePrincipal, ConsumerPrincipal, Principal, RequestContext


class AuthStage(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    IDENTITY_RESOLVED = "identity_resolved"
    PRINCIPAL_RESOLVED = "principal_resolved"
    AUTHORIZED = "authorized"
    REJECTED = "rejected"


@dataclass(slots=True)
class RequestAuthState:
    """Authentication outcome of the current request.

    Attributes:
        context: Consumer or back-office resolution path.
        stage: Pipeline progress.
        external_id: Identity-provider user id, set by stage 1.
        email: Identity email; None on a token-cache hit until stage 2
            fetches it.
        identity_cached: Whether stage 1 was served from the token cache.
        consumer_id: Authenticated consumer id (consumer context only).
        is_guest: Consumer guest flag.
        backoffice_id: Authenticated back-office/trader id (back-office only).
        is_admin: Back-office admin flag.
        rejection: Message of the error that rejected the request, if any.
    """

    context: RequestContext = RequestContext.CONSUMER
    stage: AuthStage = AuthStage.UNAUTHENTICATED
    external_id: str | None = None
    email: str | None = None
    identity_cached: bool = False
    consumer_id: int | None = None
    is_guest: bool | None = None
    backoffice_id: int | None = None
    is_admin: bool | None = None
    rejection: str | None = None

    @property
    def identity_resolved(self) -> bool:
        return self.external_id is not None and self.stage in (
            AuthStage.IDENTITY_RESOLVED,
            AuthStage.PRINCIPAL_RESOLVED,
            AuthStage.AUTHORIZED,
        )

    @property
    def authorized(self) -> bool:
        return self.stage is AuthStage.AUTHORIZED

    def apply_principal(self, principal: Principal) -> None:
        """Record a positive principal; only the field pair of its kind is set."""
        if isinstance(principal, BackofficePrincipal):
            self.backoffice_id = principal.id
            self.is_admin = principal.is_admin
        elif isinstance(principal, ConsumerPrincipal):
            self.consumer_id = principal.id
            self.is_guest = principal.is_guest
        self.stage = AuthStage.PRINCIPAL_RESOLVED

    def reject(self, message: str) -> None:
        self.stage = AuthStage.REJECTED
        self.rejection = message

    def summary(self) -> str:
        """Short auth description for log lines, '' when nothing is resolved."""
        parts = []
        if self.consumer_id:
            parts.append(f"ConsumerId:{self.consumer_id} (Guest:{bool(self.is_guest)})")
        if self.backoffice_id:
            parts.append(f"BackofficeId:{self.backoffice_id} (Admin:{bool(self.is_admin)})")
        return "".join(parts)
