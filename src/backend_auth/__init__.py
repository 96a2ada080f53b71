"""
Authentication resolution pipeline for Flask microservices.

High-level flow (per request)
-----------------------------
1. A request id is assigned and a fresh `RequestAuthState` is stored in
   `flask.g.auth`; the `RequestContext: Backoffice` header selects the
   back-office path, anything else the consumer path.
2. Stage 1: the bearer token is pulled from `Authorization` and resolved to an
   external identity through the context's `TokenCache`. A miss verifies the
   JWT (`JWTVerifier` + `JWKSKeyProvider`) and caches `token -> uid`.
3. Stage 2: the external identity is resolved to an internal principal through
   the `PrincipalCache`. A miss looks up the user's email and runs one point
   query on the principal store (`PrincipalResolver`); the result, positive or
   not, is cached.
4. The optional admin guard reads the state; it never performs I/O.
5. Views read the outcome with the accessors (`get_authenticated_consumer_id`,
   `get_is_admin`, ...).

Every failure is an `AuthError` carrying an HTTP status and a message,
returned to the client as `{"error": <message>}`.

Example usage
-------------

.. code-block:: python

    from flask import Flask

    from backend_auth import (
        AuthExtension,
        AuthSettings,
        get_authenticated_consumer_id,
        initialize,
        install_recovery,
        install_request_logging,
        request_id,
        setup_logging,
    )

    settings = AuthSettings.from_env()
    setup_logging(settings.env, settings.service_name, settings.log_path)

    app = Flask(__name__)
    request_id.init_app(app)
    install_request_logging(app)
    install_recovery(app)

    auth = AuthExtension()
    auth.init_app(app, pipeline=initialize(settings), whitelist=settings.whitelist)

    @app.get("/me")
    @auth.require_auth()
    def me():
        return {"consumer_id": get_authenticated_consumer_id()}

    @app.get("/admin/stats")
    @auth.require_admin()
    def stats():
        return {"ok": True}
"""

from . import request_id

# Accessors
from .accessors import (
    get_auth_state,
    get_authenticated_backoffice_id,
    get_authenticated_consumer_id,
    get_external_email,
    get_external_id,
    get_is_admin,
    get_is_guest,
    peek_auth_state,
    validate_authorized,
)

# Cache stores
from .cache_stores import InMemoryCache, RedisCache

# Configuration and wiring
from .config import AuthSettings, IdentityProviderSettings
from .db import connect_redis, create_db_engine

# Errors
from .errors import (
    AuthError,
    ExpiredToken,
    IdentityLookupFailed,
    InsufficientPermissions,
    InvalidToken,
    MissingToken,
    PrincipalLookupFailed,
    PrincipalNotFound,
)

# Extractors
from .extractors import extract_bearer_token
from .factory import initialize

# Flask extension
from .flask_extension import AuthExtension

# Identity
from .identity import HttpUserDirectory, JWTIdentityProvider, VerifiedIdentity

# Key providers
from .key_providers import JWKSKeyProvider

# Logging and middleware
from .logs import setup_logging
from .middleware import install_recovery, install_request_logging

# Pipeline
from .pipeline import AuthPipeline
from .principal_cache import PrincipalCache

# Principals
from .principals import BackofficePrincipal, ConsumerPrincipal, Principal, RequestContext

# Protocols
from .protocols import (
    CacheStore,
    Claims,
    IdentityProvider,
    KeyProvider,
    PrincipalStore,
    TokenVerifier,
    UserDirectory,
    ViewFunc,
)

# Refresh gate
from .refresh_gate import RefreshGate
from .resolver import PrincipalResolver, PrincipalTables
from .state import AuthStage, RequestAuthState
from .token_cache import TokenCache

# Verifier
from .verifier import JWTVerifier, JWTVerifyOptions

__all__ = [
    # Errors
    "AuthError",
    "ExpiredToken",
    "IdentityLookupFailed",
    "InsufficientPermissions",
    "InvalidToken",
    "MissingToken",
    "PrincipalLookupFailed",
    "PrincipalNotFound",
    # Protocols
    "CacheStore",
    "Claims",
    "IdentityProvider",
    "KeyProvider",
    "PrincipalStore",
    "TokenVerifier",
    "UserDirectory",
    "ViewFunc",
    # Principals and state
    "AuthStage",
    "BackofficePrincipal",
    "ConsumerPrincipal",
    "Principal",
    "RequestAuthState",
    "RequestContext",
    # Extractors
    "extract_bearer_token",
    # Identity
    "HttpUserDirectory",
    "JWKSKeyProvider",
    "JWTIdentityProvider",
    "JWTVerifier",
    "JWTVerifyOptions",
    "RefreshGate",
    "VerifiedIdentity",
    # Caches
    "InMemoryCache",
    "PrincipalCache",
    "RedisCache",
    "TokenCache",
    # Principal store
    "PrincipalResolver",
    "PrincipalTables",
    # Pipeline and Flask glue
    "AuthExtension",
    "AuthPipeline",
    "get_auth_state",
    "get_authenticated_backoffice_id",
    "get_authenticated_consumer_id",
    "get_external_email",
    "get_external_id",
    "get_is_admin",
    "get_is_guest",
    "peek_auth_state",
    "validate_authorized",
    # Configuration, wiring and logging
    "AuthSettings",
    "IdentityProviderSettings",
    "connect_redis",
    "create_db_engine",
    "initialize",
    "install_recovery",
    "install_request_logging",
    "request_id",
    "setup_logging",
]
