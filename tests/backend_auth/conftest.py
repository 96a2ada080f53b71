import fnmatch
import time
from typing import Any

import jwt
import pytest
from flask import Flask
from jwt import PyJWK
from jwt.utils import base64url_encode
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

import backend_auth as m
from backend_auth import cache_stores

SECRET = b"0123456789abcdef0123456789abcdef"
ISSUER = "https://securetoken.example.com/shop"
AUDIENCE = "shop"


@pytest.fixture()
def app():
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def make_oct_jwk():
    """
    Factory fixture that returns a function.

    Usage in tests:
        jwk = make_oct_jwk(kid="k1")
    """

    def _make(*, kid: str = "kid1", secret: bytes = SECRET) -> PyJWK:
        jwk_dict = {
            "kty": "oct",
            "kid": kid,
            "k": base64url_encode(secret).decode("ascii"),
            "alg": "HS256",
            "use": "sig",
        }
        return PyJWK.from_dict(jwk_dict)

    return _make


@pytest.fixture
def make_token():
    """Sign an HS256 token for ISSUER/AUDIENCE; claims override the defaults."""

    def _make(
        *, kid: str = "kid1", secret: bytes = SECRET, **claims: Any
    ) -> str:
        now = int(time.time())
        payload = {
            "iss": ISSUER,
            "aud": AUDIENCE,
            "sub": "uid-1",
            "email": "ada@example.com",
            "iat": now,
            "exp": now + 3600,
        }
        payload.update(claims)
        return jwt.encode(payload, secret, algorithm="HS256", headers={"kid": kid})

    return _make


class StaticKeys(m.KeyProvider):
    """KeyProvider serving a fixed set of keys."""

    def __init__(self, *keys: PyJWK):
        self._keys = {k.key_id: k for k in keys}

    def get_key_for_token(self, kid: str) -> PyJWK:
        try:
            return self._keys[kid]
        except KeyError:
            raise m.InvalidToken("Unknown kid") from None


@pytest.fixture
def static_keys(make_oct_jwk):
    return StaticKeys(make_oct_jwk(kid="kid1"))


@pytest.fixture
def hs256_options():
    return m.JWTVerifyOptions(issuer=ISSUER, audience=AUDIENCE, algorithms=("HS256",))


class FakeIdentityProvider:
    """
    IdentityProvider stub.

    ``tokens`` maps accepted tokens to identities, ``emails`` maps external
    ids to user-record emails. Calls are counted.
    """

    def __init__(
        self,
        tokens: dict[str, m.VerifiedIdentity] | None = None,
        emails: dict[str, str] | None = None,
    ):
        self.tokens = dict(tokens or {})
        self.emails = dict(emails or {})
        self.verify_calls = 0
        self.email_calls = 0

    def verify(self, token: str) -> m.VerifiedIdentity:
        self.verify_calls += 1
        try:
            return self.tokens[token]
        except KeyError:
            raise m.InvalidToken("signature mismatch") from None

    def get_user_email(self, external_id: str) -> str:
        self.email_calls += 1
        try:
            return self.emails[external_id]
        except KeyError:
            raise m.IdentityLookupFailed("no user record") from None


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


class FakePrincipalStore:
    """PrincipalStore stub keyed by (context, email); counts calls."""

    def __init__(self, rows: dict[tuple[m.RequestContext, str], m.Principal] | None = None):
        self.rows = dict(rows or {})
        self.calls: list[tuple[str, str, m.RequestContext]] = []
        self.fail = False

    def resolve_principal(
        self, external_id: str, email: str, context: m.RequestContext
    ) -> m.Principal:
        self.calls.append((external_id, email, context))
        if self.fail:
            raise m.PrincipalLookupFailed("connection refused")
        principal = self.rows.get((context, email))
        if principal is None:
            if context is m.RequestContext.BACKOFFICE:
                return m.BackofficePrincipal(id=0, is_admin=False)
            return m.ConsumerPrincipal(id=0, is_guest=True)
        return principal


@pytest.fixture
def principal_store() -> FakePrincipalStore:
    return FakePrincipalStore()


class FakeRedis:
    """
    Minimal redis stub for RedisCache tests.
    Stores bytes under keys and supports setex, delete and scan_iter.
    """

    def __init__(self):
        self._store: dict[str, tuple[bytes, int]] = {}

    def get(self, key: str):
        item = self._store.get(key)
        if item is None:
            return None
        data, expires_at = item
        if int(time.time()) >= expires_at:
            self._store.pop(key, None)
            return None
        return data

    def setex(self, key: str, ttl_seconds: int, value: str | bytes):
        expires_at = int(time.time()) + int(ttl_seconds)
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._store[key] = (value, expires_at)

    def delete(self, *keys: str):
        removed = 0
        for key in keys:
            if self._store.pop(key, None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match: str = "*"):
        return iter([k for k in list(self._store) if fnmatch.fnmatchcase(k, match)])


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


class Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> Clock:
    """Freeze the clock used by the in-memory cache stores."""
    c = Clock()
    monkeypatch.setattr(cache_stores.time, "time", lambda: c.now)
    return c


@pytest.fixture
def principal_db():
    """
    In-memory SQLite principal store with the default schema-qualified tables.

    Rows:
        consumers.consumers: ada@example.com (7, not guest), guest@example.com (8, guest)
        traders.traders: ops@example.com (3, admin), clerk@example.com (4, not admin)
    """
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    with engine.connect() as conn:
        conn.execute(text("ATTACH DATABASE ':memory:' AS consumers"))
        conn.execute(text("ATTACH DATABASE ':memory:' AS traders"))
        conn.commit()

    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE consumers.consumers "
                "(id INTEGER PRIMARY KEY, email TEXT UNIQUE, is_guest BOOLEAN)"
            )
        )
        conn.execute(
            text(
                "CREATE TABLE traders.traders "
                "(id INTEGER PRIMARY KEY, email TEXT UNIQUE, is_admin BOOLEAN)"
            )
        )
        conn.execute(
            text(
                "INSERT INTO consumers.consumers (id, email, is_guest) VALUES "
                "(7, 'ada@example.com', 0), (8, 'guest@example.com', 1)"
            )
        )
        conn.execute(
            text(
                "INSERT INTO traders.traders (id, email, is_admin) VALUES "
                "(3, 'ops@example.com', 1), (4, 'clerk@example.com', 0)"
            )
        )

    yield engine
    engine.dispose()
