"""Tests for session-token authentication.

Tests cover:
- Middleware: public paths, missing/malformed headers, invalid tokens
- JwksTokenVerifier claim validation against a locally generated key
- Bearer header parsing
"""

import time
from types import SimpleNamespace
from uuid import uuid4

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import load_pem_public_key
from jwt.exceptions import PyJWKClientError

from socialbro.auth.middleware import extract_bearer_token, is_public_path
from socialbro.auth.verifier import JwksTokenVerifier, validate_subject
from socialbro.errors import ApiError, ApiErrorCode
from tests.helpers import auth_headers, mint_test_token
from tests.support.jwt_verifier import MockJwtVerifier


class TestMiddleware:
    def test_health_is_public(self, client):
        assert client.get("/health").status_code == 200

    def test_missing_header(self, client):
        response = client.get("/me")

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "E_UNAUTHENTICATED"
        assert error["message"] == "Authentication required"

    def test_malformed_header(self, client):
        response = client.get("/me", headers={"Authorization": "Token abc"})

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid authorization header format"

    def test_garbage_token(self, client):
        response = client.get("/me", headers={"Authorization": "Bearer not.a.jwt"})

        assert response.status_code == 401

    def test_expired_token(self, client, user_id):
        response = client.get("/me", headers=auth_headers(user_id, expires_in=-3600))

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Token expired"

    def test_wrong_audience(self, client, user_id):
        response = client.get("/me", headers=auth_headers(user_id, audience="someone-else"))

        assert response.status_code == 401

    def test_error_carries_request_id(self, client):
        response = client.get("/me", headers={"X-Request-ID": "trace-abc"})

        assert response.headers["X-Request-ID"] == "trace-abc"
        assert response.json()["error"]["request_id"] == "trace-abc"

    def test_valid_token(self, client, user_id):
        response = client.get("/me", headers=auth_headers(user_id))

        assert response.status_code == 200


class TestHelpers:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ("Bearer abc", "abc"),
            ("bearer abc ", "abc"),
            ("Bearer ", None),
            ("Basic abc", None),
            (None, None),
            ("", None),
        ],
    )
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected

    def test_public_paths(self):
        assert is_public_path("/health")
        assert is_public_path("/admin/invite")
        assert not is_public_path("/keys")
        assert not is_public_path("/healthz")

    def test_validate_subject(self):
        sub = str(uuid4())
        assert validate_subject({"sub": sub})["sub"] == sub

        with pytest.raises(ApiError):
            validate_subject({"sub": "user-1"})
        with pytest.raises(ApiError):
            validate_subject({})


class FakeJwksClient:
    """Stands in for PyJWKClient, returning a fixed signing key."""

    def __init__(self, public_key, fail: Exception | None = None):
        self.public_key = public_key
        self.fail = fail
        self.calls = 0

    def get_signing_key_from_jwt(self, token):
        self.calls += 1
        if self.fail is not None:
            raise self.fail
        return SimpleNamespace(key=self.public_key)


@pytest.fixture
def verifier() -> JwksTokenVerifier:
    verifier = JwksTokenVerifier(
        jwks_url="https://auth.test/.well-known/jwks.json",
        issuer="test-issuer/",
        audiences=["test-audience"],
    )
    verifier._jwks_client = FakeJwksClient(load_pem_public_key(MockJwtVerifier.get_public_key()))
    return verifier


class TestJwksTokenVerifier:
    def test_valid_token(self, verifier):
        user_id = uuid4()
        payload = verifier.verify(mint_test_token(user_id))

        assert payload["sub"] == str(user_id)

    def test_expired_token(self, verifier):
        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_test_token(uuid4(), expires_in=-3600))

        assert exc_info.value.message == "Token expired"

    def test_wrong_issuer(self, verifier):
        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_test_token(uuid4(), issuer="evil"))

        assert exc_info.value.message == "Invalid token issuer"

    def test_bad_signature(self, verifier):
        other_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        now = int(time.time())
        token = jwt.encode(
            {
                "sub": str(uuid4()),
                "iss": "test-issuer",
                "aud": "test-audience",
                "exp": now + 60,
            },
            other_key,
            algorithm="RS256",
        )

        with pytest.raises(ApiError) as exc_info:
            verifier.verify(token)

        assert exc_info.value.message == "Invalid token signature"

    def test_non_uuid_subject(self, verifier):
        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_test_token("not-a-uuid"))

        assert "sub" in exc_info.value.message

    def test_jwks_unreachable(self, verifier):
        verifier._jwks_client = FakeJwksClient(None, fail=PyJWKClientError("Fail to fetch data"))

        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_test_token(uuid4()))

        assert exc_info.value.code == ApiErrorCode.E_AUTH_UNAVAILABLE
        assert exc_info.value.status_code == 503

    def test_unknown_kid_refreshes_once(self, verifier, monkeypatch):
        missing = FakeJwksClient(None, fail=PyJWKClientError("Unable to find a signing key"))
        verifier._jwks_client = missing
        refreshed = FakeJwksClient(None, fail=PyJWKClientError("Unable to find a signing key"))
        monkeypatch.setattr(verifier, "_new_jwks_client", lambda: refreshed)

        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_test_token(uuid4()))

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED
        assert missing.calls == 1
        assert refreshed.calls == 1
