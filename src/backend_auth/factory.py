"""Process-start wiring of the authorization pipeline.

``initialize`` builds every long-lived collaborator once: key providers,
verifiers, identity providers and token caches per request context, the
principal cache and the principal resolver. The returned pipeline is shared by
all request threads and handed to ``AuthExtension.init_app``.

Example:
    ```python
    settings = AuthSettings.from_env()
    setup_logging(settings.env, settings.service_name, settings.log_path)

    app = Flask(__name__)
    request_id.init_app(app)
    install_request_logging(app)
    install_recovery(app)

    auth = AuthExtension()
    auth.init_app(app, pipeline=initialize(settings), whitelist=settings.whitelist)
    ```
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .cache_stores import InMemoryCache, RedisCache
from .db import connect_redis, create_db_engine
from .identity import HttpUserDirectory, JWTIdentityProvider
from .key_providers import JWKSKeyProvider, jwks_url_for_issuer
from .pipeline import AuthPipeline
from .principal_cache import PrincipalCache
from .principals import RequestContext
from .resolver import PrincipalResolver
from .token_cache import TokenCache
from .verifier import JWTVerifier, JWTVerifyOptions

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from .config import AuthSettings, IdentityProviderSettings
    from .protocols import CacheStore

logger = logging.getLogger(__name__)


class _StoreFactory:
    """Hands out one independent cache store per namespace."""

    def __init__(self, service_name: str, redis_client: Any | None) -> None:
        self._service_name = service_name
        self._redis = redis_client

    def __call__(self, namespace: str) -> CacheStore:
        if self._redis is None:
            return InMemoryCache()
        return RedisCache(self._redis, prefix=f"{self._service_name}:{namespace}:")


def _identity_provider(
    settings: AuthSettings,
    provider: IdentityProviderSettings,
    context: RequestContext,
    stores: _StoreFactory,
) -> JWTIdentityProvider:
    prefix = context.name
    if not provider.issuer:
        raise ValueError(f"{prefix}_AUTH_ISSUER is required for {context.value} requests")
    if not provider.user_directory_url:
        # A token-cache hit carries no email, so a principal miss after it needs
        # the user record.
        raise ValueError(
            f"{prefix}_USER_DIRECTORY_URL is required when {prefix}_AUTH_ISSUER is set"
        )

    keys = JWKSKeyProvider(
        provider.jwks_url or jwks_url_for_issuer(provider.issuer),
        cache=stores(f"jwks:{context.value}"),
        timeout=settings.lookup_timeout_seconds,
    )
    verifier = JWTVerifier(
        keys, JWTVerifyOptions(issuer=provider.issuer, audience=provider.audience)
    )

    directory = HttpUserDirectory(
        provider.user_directory_url,
        token=settings.user_directory_token,
        timeout=settings.lookup_timeout_seconds,
    )

    return JWTIdentityProvider(verifier, directory)


def initialize(
    settings: AuthSettings,
    *,
    engine: Engine | None = None,
    redis_client: Any | None = None,
) -> AuthPipeline:
    """Build the pipeline described by ``settings``.

    Args:
        settings: Loaded configuration.
        engine: Principal store engine; created from ``database_url`` if None.
        redis_client: Shared cache client; created from ``redis_url`` if None
            and a URL is set. Without either, caches are in-process.

    Raises:
        ValueError: No request context has an identity provider configured.
    """
    if redis_client is None and settings.redis_url:
        redis_client = connect_redis(settings.redis_url)
    if engine is None:
        engine = create_db_engine(settings.database_url, settings.lookup_timeout_seconds)

    stores = _StoreFactory(settings.service_name, redis_client)

    token_caches: dict[RequestContext, TokenCache] = {}
    for context, provider in (
        (RequestContext.CONSUMER, settings.consumer),
        (RequestContext.BACKOFFICE, settings.backoffice),
    ):
        if not provider.enabled:
            continue
        token_caches[context] = TokenCache(
            _identity_provider(settings, provider, context, stores),
            stores(f"token:{context.value}"),
            ttl_seconds=settings.token_cache_ttl_seconds,
        )

    if not token_caches:
        raise ValueError(
            "No identity provider configured; set CONSUMER_AUTH_ISSUER or BACKOFFICE_AUTH_ISSUER"
        )

    pipeline = AuthPipeline(
        token_caches,
        PrincipalCache(
            stores("principal"), ttl_seconds=settings.principal_cache_ttl_seconds
        ),
        PrincipalResolver(engine, settings.tables),
        service_name=settings.service_name,
    )
    logger.info(
        "Auth pipeline initialized for %s (contexts: %s, shared cache: %s)",
        settings.service_name,
        ", ".join(sorted(c.value for c in pipeline.contexts)),
        redis_client is not None,
    )
    return pipeline
