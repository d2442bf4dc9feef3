"""Unit tests for access token verification."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from unibits.auth.jwt import create_access_token, reset_keys, verify_token
from unibits.config import get_settings


def _encode(**overrides) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "user-1",
        "iat": now,
        "exp": now + timedelta(minutes=5),
        "iss": settings.jwt_issuer,
        "type": "access",
    }
    payload.update(overrides)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


class TestVerifyToken:
    def test_round_trip_claims(self):
        payload = verify_token(create_access_token("user-1", "Ada"))
        assert payload["sub"] == "user-1"
        assert payload["name"] == "Ada"
        assert payload["type"] == "access"

    def test_name_claim_optional(self):
        assert "name" not in verify_token(create_access_token("user-1"))

    def test_expired_token(self):
        token = _encode(exp=datetime.now(timezone.utc) - timedelta(seconds=1))
        with pytest.raises(jwt.InvalidTokenError, match="expired"):
            verify_token(token)

    def test_wrong_issuer(self):
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(_encode(iss="someone-else"))

    def test_wrong_signature(self):
        token = jwt.encode(
            {"sub": "user-1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5), "iss": "unibits"},
            "a-completely-different-secret-value",
            algorithm="HS256",
        )
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token)

    def test_refresh_token_rejected(self):
        with pytest.raises(jwt.InvalidTokenError, match="Expected token type"):
            verify_token(_encode(type="refresh"))

    def test_missing_subject(self):
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(_encode(sub=None))

    def test_blank_subject(self):
        with pytest.raises(jwt.InvalidTokenError, match="no subject"):
            verify_token(_encode(sub="  "))


@pytest.fixture
def rsa_private_key(tmp_path, monkeypatch) -> str:
    """Switch verification to RS256 with a freshly generated key pair."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    public_path = tmp_path / "jwt_public.pem"
    public_path.write_bytes(
        key.public_key().public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
        )
    )
    monkeypatch.setenv("UNIBITS_JWT_ALGORITHM", "RS256")
    monkeypatch.setenv("UNIBITS_JWT_PUBLIC_KEY_PATH", str(public_path))
    get_settings.cache_clear()
    reset_keys()
    yield key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
    ).decode()
    get_settings.cache_clear()
    reset_keys()


class TestAsymmetricVerification:
    def test_rs256_token_verified_with_public_key(self, rsa_private_key):
        token = create_access_token("user-1", signing_key=rsa_private_key)
        assert verify_token(token)["sub"] == "user-1"

    def test_shared_secret_token_rejected(self, rsa_private_key):
        token = jwt.encode(
            {"sub": "user-1", "exp": datetime.now(timezone.utc) + timedelta(minutes=5), "iss": "unibits"},
            "unibits-dev-secret-change-me-0123456789",
            algorithm="HS256",
        )
        with pytest.raises(jwt.InvalidTokenError):
            verify_token(token)
