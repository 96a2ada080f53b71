"""Two-stage authorization pipeline.

Stage 1 (identity): bearer token -> verified external identity, served from
the TokenCache of the request's context when possible.

Stage 2 (principal): external identity -> internal principal, served from the
PrincipalCache when possible, otherwise email lookup plus one store query.

The admin guard is a pure read of the state stage 2 produced.

State machine per request::

    UNAUTHENTICATED -> IDENTITY_RESOLVED -> PRINCIPAL_RESOLVED -> AUTHORIZED
            \\                 \\                                   (guard)
             +-----------------+------------> REJECTED

Every failure raises an AuthError subclass and marks the state REJECTED. The
pipeline never retries; caches are written only after a call succeeds, so a
failing or interrupted request leaves them untouched.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING

from .errors import (
    AuthError,
    IdentityLookupFailed,
    InsufficientPermissions,
    InvalidToken,
    MissingToken,
    PrincipalLookupFailed,
    PrincipalNotFound,
)
from .extractors import extract_bearer_token
from .principals import RequestContext
from .state import AuthStage, RequestAuthState

if TYPE_CHECKING:
    from .principal_cache import PrincipalCache
    from .principals import Principal
    from .protocols import PrincipalStore
    from .token_cache import TokenCache

logger = logging.getLogger(__name__)


class AuthPipeline:
    """Orchestrates token cache, identity provider, principal cache and store.

    Build one per process (see ``backend_auth.factory.initialize``) and share it
    between request threads; it holds no per-request data.

    Attributes:
        service_name: Appended to client-facing error messages.
    """

    def __init__(
        self,
        token_caches: Mapping[RequestContext, TokenCache],
        principal_cache: PrincipalCache,
        resolver: PrincipalStore,
        *,
        service_name: str | None = None,
    ) -> None:
        if not token_caches:
            raise ValueError("At least one token cache is required")

        self._token_caches = dict(token_caches)
        self._principals = principal_cache
        self._resolver = resolver
        self.service_name = service_name

    @property
    def contexts(self) -> frozenset[RequestContext]:
        return frozenset(self._token_caches)

    def new_state(self, context_header: str | None = None) -> RequestAuthState:
        """Fresh state for a request carrying ``RequestContext: context_header``."""
        return RequestAuthState(context=RequestContext.from_header(context_header))

    def _fail(self, state: RequestAuthState, error: AuthError) -> AuthError:
        state.reject(error.description)
        logger.warning("Rejecting request (%s): %s", state.context.value, error.description)
        return error

    def _token_cache(self, state: RequestAuthState) -> TokenCache:
        try:
            return self._token_caches[state.context]
        except KeyError:
            raise self._fail(
                state,
                InvalidToken.for_service(
                    f"no identity provider for {state.context.value} requests",
                    self.service_name,
                ),
            ) from None

    # ------------------------------------------------------------------
    # Stage 1
    # ------------------------------------------------------------------

    def authenticate(self, authorization_header: str | None, state: RequestAuthState) -> None:
        """Resolve the request's identity and record it in ``state``.

        A state that already went through stage 1 is left as is.

        Raises:
            MissingToken: No token in the header. No I/O performed.
            InvalidToken: The identity provider rejected the token.
        """
        if state.identity_resolved:
            return

        token = extract_bearer_token(authorization_header)
        if not token:
            raise self._fail(state, MissingToken.for_service(self.service_name))

        cache = self._token_cache(state)
        try:
            identity, cache_hit = cache.resolve_identity(token)
        except InvalidToken as e:
            raise self._fail(state, InvalidToken.for_service(e, self.service_name)) from e

        state.external_id = identity.external_id
        state.email = identity.email
        state.identity_cached = cache_hit
        state.stage = AuthStage.IDENTITY_RESOLVED

    # ------------------------------------------------------------------
    # Stage 2
    # ------------------------------------------------------------------

    def _lookup_email(self, state: RequestAuthState, external_id: str) -> str:
        if state.email:
            return state.email

        provider = self._token_cache(state).provider
        try:
            email = provider.get_user_email(external_id)
        except IdentityLookupFailed as e:
            raise self._fail(
                state, IdentityLookupFailed.for_service(e, self.service_name)
            ) from e

        state.email = email
        return email

    def _resolve(self, state: RequestAuthState, external_id: str) -> Principal:
        context = state.context

        principal, cached = self._principals.get(external_id, context)
        if cached and principal is not None:
            return principal

        email = self._lookup_email(state, external_id)
        try:
            principal = self._resolver.resolve_principal(external_id, email, context)
        except PrincipalLookupFailed as e:
            raise self._fail(state, PrincipalLookupFailed.for_service(self.service_name)) from e

        self._principals.put(external_id, context, principal)
        logger.info(
            "%s not cached. uid: %s email: %s id: %s",
            context.value,
            external_id,
            email,
            principal.id,
        )
        return principal

    def authorize(self, state: RequestAuthState) -> None:
        """Resolve the principal for the identity found by stage 1.

        Only the context selected for the request is resolved.

        Raises:
            MissingToken: Stage 1 has not succeeded for this state.
            IdentityLookupFailed: The user-record lookup failed.
            PrincipalLookupFailed: The store query failed.
            PrincipalNotFound: No principal matches (cached as negative).
        """
        if state.authorized:
            return
        if not state.identity_resolved or state.external_id is None:
            raise self._fail(state, MissingToken.for_service(self.service_name))

        principal = self._resolve(state, state.external_id)
        if not principal.found:
            raise self._fail(state, PrincipalNotFound())

        state.apply_principal(principal)
        state.stage = AuthStage.AUTHORIZED
        logger.info(
            "uid: %s %s id: %s, isCache: %s",
            state.external_id,
            state.context.value,
            principal.id,
            state.identity_cached,
        )

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def require_admin(self, state: RequestAuthState) -> None:
        """Allow only an authorized back-office principal flagged admin.

        Pure read of ``state``; no I/O.

        Raises:
            InsufficientPermissions: Not authorized, or not an admin.
        """
        if not state.authorized or state.is_admin is not True:
            raise InsufficientPermissions()

    def run(
        self,
        authorization_header: str | None,
        state: RequestAuthState,
        *,
        require_principal: bool = True,
        require_admin: bool = False,
    ) -> RequestAuthState:
        """Run the stages a guarded endpoint needs, in order."""
        self.authenticate(authorization_header, state)
        if require_principal or require_admin:
            self.authorize(state)
        if require_admin:
            self.require_admin(state)
        return state
