import pytest

import backend_auth as m

BASE_ENV = {"SERVICE_NAME": "orders", "DATABASE_URL": "sqlite://"}


def test_defaults():
    settings = m.AuthSettings.from_env(BASE_ENV)

    assert settings.service_name == "orders"
    assert settings.database_url == "sqlite://"
    assert settings.env == "local"
    assert settings.is_prod is False
    assert settings.redis_url is None
    assert settings.token_cache_ttl_seconds == 1200
    assert settings.principal_cache_ttl_seconds == 1200
    assert settings.lookup_timeout_seconds == 5
    assert settings.tables == m.PrincipalTables("consumers.consumers", "traders.traders")
    assert settings.consumer.enabled is False
    assert settings.backoffice.enabled is False
    assert settings.whitelist == ()


def test_full_environment():
    env = {
        **BASE_ENV,
        "ENV": "prod",
        "REDIS_URL": "redis://cache:6379/0",
        "TOKEN_CACHE_TTL_SECONDS": "600",
        "PRINCIPAL_CACHE_TTL_SECONDS": "300",
        "CONSUMER_AUTH_ISSUER": "https://securetoken.google.com/shop",
        "CONSUMER_AUTH_AUDIENCE": "shop",
        "CONSUMER_JWKS_URL": "https://keys.example.com/jwks.json",
        "CONSUMER_USER_DIRECTORY_URL": "https://users.internal/consumers",
        "BACKOFFICE_AUTH_ISSUER": "https://securetoken.google.com/shop-admin",
        "USER_DIRECTORY_TOKEN": "svc-token",
        "LOOKUP_TIMEOUT_SECONDS": "2",
        "CONSUMER_TABLE": "public.customers",
        "LOG_PATH": "/var/log/orders.log",
        "AUTH_WHITELIST": "/health, /docs/ ,,",
    }

    settings = m.AuthSettings.from_env(env)

    assert settings.is_prod is True
    assert settings.redis_url == "redis://cache:6379/0"
    assert settings.token_cache_ttl_seconds == 600
    assert settings.principal_cache_ttl_seconds == 300
    assert settings.consumer == m.IdentityProviderSettings(
        issuer="https://securetoken.google.com/shop",
        audience="shop",
        jwks_url="https://keys.example.com/jwks.json",
        user_directory_url="https://users.internal/consumers",
    )
    assert settings.backoffice.enabled is True
    assert settings.backoffice.jwks_url is None
    assert settings.user_directory_token == "svc-token"
    assert settings.lookup_timeout_seconds == 2
    assert settings.tables.consumers == "public.customers"
    assert settings.tables.backoffice == "traders.traders"
    assert settings.log_path == "/var/log/orders.log"
    assert settings.whitelist == ("/health", "/docs/")


@pytest.mark.parametrize("missing", ["SERVICE_NAME", "DATABASE_URL"])
def test_missing_required(missing):
    env = {k: v for k, v in BASE_ENV.items() if k != missing}

    with pytest.raises(ValueError, match=missing):
        m.AuthSettings.from_env(env)


@pytest.mark.parametrize("value", ["abc", "0", "-5"])
def test_invalid_integers(value):
    with pytest.raises(ValueError, match="TOKEN_CACHE_TTL_SECONDS"):
        m.AuthSettings.from_env({**BASE_ENV, "TOKEN_CACHE_TTL_SECONDS": value})


def test_invalid_table_name():
    with pytest.raises(ValueError):
        m.AuthSettings.from_env({**BASE_ENV, "CONSUMER_TABLE": "x; DROP TABLE y"})


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr("backend_auth.config.load_dotenv", lambda: False)
    for key, value in BASE_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.setenv("ENV", "staging")

    settings = m.AuthSettings.from_env()

    assert settings.env == "staging"
    assert settings.service_name == "orders"
