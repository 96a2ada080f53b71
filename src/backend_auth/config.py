"""Environment-driven settings.

Values come from ``os.environ`` after ``load_dotenv()``, so a local ``.env``
file works the same way as real environment variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .principal_cache import DEFAULT_PRINCIPAL_TTL_SECONDS
from .resolver import PrincipalTables
from .token_cache import DEFAULT_TOKEN_TTL_SECONDS


@dataclass(frozen=True, slots=True)
class IdentityProviderSettings:
    """Issuer settings for one request context.

    ``issuer`` unset means the context has no identity provider and requests
    in it are rejected.
    """

    issuer: str | None = None
    audience: str | None = None
    jwks_url: str | None = None
    user_directory_url: str | None = None

    @property
    def enabled(self) -> bool:
        return bool(self.issuer)


@dataclass(frozen=True, slots=True)
class AuthSettings:
    service_name: str
    database_url: str
    env: str = "local"
    redis_url: str | None = None
    token_cache_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    principal_cache_ttl_seconds: int = DEFAULT_PRINCIPAL_TTL_SECONDS
    consumer: IdentityProviderSettings = field(default_factory=IdentityProviderSettings)
    backoffice: IdentityProviderSettings = field(default_factory=IdentityProviderSettings)
    user_directory_token: str | None = None
    lookup_timeout_seconds: int = 5
    tables: PrincipalTables = field(default_factory=PrincipalTables)
    log_path: str | None = None
    whitelist: tuple[str, ...] = ()

    @property
    def is_prod(self) -> bool:
        return self.env == "prod"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AuthSettings:
        """Build settings from the process environment (or ``environ``).

        Raises:
            ValueError: A required variable is missing or a number is invalid.
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        def optional(name: str) -> str | None:
            value = environ.get(name, "").strip()
            return value or None

        def required(name: str) -> str:
            value = optional(name)
            if value is None:
                raise ValueError(f"Missing required environment variable {name}")
            return value

        def integer(name: str, default: int) -> int:
            raw = optional(name)
            if raw is None:
                return default
            try:
                value = int(raw)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got {raw!r}") from None
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")
            return value

        def provider(prefix: str) -> IdentityProviderSettings:
            return IdentityProviderSettings(
                issuer=optional(f"{prefix}_AUTH_ISSUER"),
                audience=optional(f"{prefix}_AUTH_AUDIENCE"),
                jwks_url=optional(f"{prefix}_JWKS_URL"),
                user_directory_url=optional(f"{prefix}_USER_DIRECTORY_URL"),
            )

        defaults = PrincipalTables()
        whitelist = tuple(
            path.strip()
            for path in environ.get("AUTH_WHITELIST", "").split(",")
            if path.strip()
        )

        return cls(
            service_name=required("SERVICE_NAME"),
            database_url=required("DATABASE_URL"),
            env=optional("ENV") or "local",
            redis_url=optional("REDIS_URL"),
            token_cache_ttl_seconds=integer("TOKEN_CACHE_TTL_SECONDS", DEFAULT_TOKEN_TTL_SECONDS),
            principal_cache_ttl_seconds=integer(
                "PRINCIPAL_CACHE_TTL_SECONDS", DEFAULT_PRINCIPAL_TTL_SECONDS
            ),
            consumer=provider("CONSUMER"),
            backoffice=provider("BACKOFFICE"),
            user_directory_token=optional("USER_DIRECTORY_TOKEN"),
            lookup_timeout_seconds=integer("LOOKUP_TIMEOUT_SECONDS", 5),
            tables=PrincipalTables(
                consumers=optional("CONSUMER_TABLE") or defaults.consumers,
                backoffice=optional("BACKOFFICE_TABLE") or defaults.backoffice,
            ),
            log_path=optional("LOG_PATH"),
            whitelist=whitelist,
        )
