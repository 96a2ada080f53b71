import httpx
import pytest

import backend_auth as m


class ClaimsVerifier(m.TokenVerifier):
    def __init__(self, claims):
        self._claims = claims

    def verify(self, token: str):
        if token != "GOOD":
            raise m.InvalidToken("Invalid token")
        return self._claims


class DictDirectory:
    def __init__(self, emails: dict[str, str], error: Exception | None = None):
        self._emails = emails
        self._error = error

    def get_user_email(self, external_id: str) -> str:
        if self._error is not None:
            raise self._error
        return self._emails[external_id]


def _directory(handler) -> m.HttpUserDirectory:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return m.HttpUserDirectory("https://users.internal/api/users/", client=client)


class TestJWTIdentityProvider:
    def test_verify_returns_identity(self):
        provider = m.JWTIdentityProvider(
            ClaimsVerifier({"sub": "uid-1", "email": "ada@example.com"})
        )

        identity = provider.verify("GOOD")

        assert identity == m.VerifiedIdentity("uid-1", "ada@example.com")

    def test_verify_without_email(self):
        provider = m.JWTIdentityProvider(ClaimsVerifier({"sub": "uid-1"}))

        assert provider.verify("GOOD").email is None

    @pytest.mark.parametrize("claims", [{}, {"sub": ""}, {"sub": 42}])
    def test_verify_rejects_unusable_subject(self, claims):
        provider = m.JWTIdentityProvider(ClaimsVerifier(claims))

        with pytest.raises(m.InvalidToken):
            provider.verify("GOOD")

    def test_verify_propagates_invalid_token(self):
        provider = m.JWTIdentityProvider(ClaimsVerifier({"sub": "uid-1"}))

        with pytest.raises(m.InvalidToken):
            provider.verify("BAD")

    def test_custom_claims(self):
        provider = m.JWTIdentityProvider(
            ClaimsVerifier({"user_id": "fb-1", "mail": "x@example.com"}),
            subject_claim="user_id",
            email_claim="mail",
        )

        assert provider.verify("GOOD") == m.VerifiedIdentity("fb-1", "x@example.com")

    def test_get_user_email_uses_directory(self):
        provider = m.JWTIdentityProvider(
            ClaimsVerifier({}), DictDirectory({"uid-1": "ada@example.com"})
        )

        assert provider.get_user_email("uid-1") == "ada@example.com"

    def test_get_user_email_without_directory(self):
        provider = m.JWTIdentityProvider(ClaimsVerifier({}))

        with pytest.raises(m.IdentityLookupFailed):
            provider.get_user_email("uid-1")

    def test_get_user_email_wraps_unexpected_errors(self):
        provider = m.JWTIdentityProvider(
            ClaimsVerifier({}), DictDirectory({}, error=KeyError("uid-1"))
        )

        with pytest.raises(m.IdentityLookupFailed):
            provider.get_user_email("uid-1")


class TestHttpUserDirectory:
    def test_returns_email(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"uid": "uid 1", "email": "ada@example.com"})

        directory = _directory(handler)

        assert directory.get_user_email("uid 1") == "ada@example.com"
        assert seen == ["https://users.internal/api/users/uid%201"]

    def test_not_found_status(self):
        directory = _directory(lambda request: httpx.Response(404, json={}))

        with pytest.raises(m.IdentityLookupFailed, match="404"):
            directory.get_user_email("uid-1")

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        directory = _directory(handler)

        with pytest.raises(m.IdentityLookupFailed, match="failed"):
            directory.get_user_email("uid-1")

    def test_invalid_json(self):
        directory = _directory(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(m.IdentityLookupFailed, match="JSON"):
            directory.get_user_email("uid-1")

    def test_record_without_email(self):
        directory = _directory(lambda request: httpx.Response(200, json={"uid": "uid-1"}))

        with pytest.raises(m.IdentityLookupFailed, match="no email"):
            directory.get_user_email("uid-1")

    def test_default_client_sends_service_credential(self):
        directory = m.HttpUserDirectory("https://users.internal", token="svc-token")
        try:
            assert directory._client.headers["Authorization"] == "Bearer svc-token"
            assert directory._client.timeout.connect == 5.0
        finally:
            directory.close()

    def test_requires_base_url(self):
        with pytest.raises(ValueError):
            m.HttpUserDirectory("")
