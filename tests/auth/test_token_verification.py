"""Tests for access token verification."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from promominer.auth.jwt import verify_token
from promominer.config import get_settings


def _encode(payload: dict, secret: str | None = None) -> str:
    settings = get_settings()
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _payload(**overrides) -> dict:
    payload = {
        "sub": "user-7",
        "exp": datetime.now(timezone.utc) + timedelta(minutes=15),
        "type": "access",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def issuer_settings(monkeypatch):
    monkeypatch.setenv("PM_JWT_ISSUER", "platform")
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


class TestVerifyToken:
    def test_valid_token(self):
        payload = verify_token(_encode(_payload()))
        assert payload["sub"] == "user-7"

    def test_type_claim_optional(self):
        raw = _payload()
        del raw["type"]
        assert verify_token(_encode(raw))["sub"] == "user-7"

    def test_expired(self):
        token = _encode(_payload(exp=datetime.now(timezone.utc) - timedelta(seconds=30)))
        with pytest.raises(jwt.InvalidTokenError, match="Token has expired"):
            verify_token(token)

    def test_refresh_token_rejected(self):
        with pytest.raises(jwt.InvalidTokenError, match="Expected token type"):
            verify_token(_encode(_payload(type="refresh")))

    def test_wrong_signature(self):
        token = _encode(_payload(), secret="some-other-secret-that-is-long-enough")
        with pytest.raises(jwt.InvalidSignatureError):
            verify_token(token)

    def test_missing_subject(self):
        raw = _payload()
        del raw["sub"]
        with pytest.raises(jwt.MissingRequiredClaimError):
            verify_token(_encode(raw))

    def test_blank_subject(self):
        with pytest.raises(jwt.InvalidTokenError, match="empty subject"):
            verify_token(_encode(_payload(sub="  ")))

    def test_missing_expiry(self):
        raw = _payload()
        del raw["exp"]
        with pytest.raises(jwt.MissingRequiredClaimError):
            verify_token(_encode(raw))


class TestIssuer:
    def test_issuer_enforced(self, issuer_settings):
        with pytest.raises(jwt.InvalidIssuerError):
            verify_token(_encode(_payload(iss="someone-else")))

    def test_matching_issuer(self, issuer_settings):
        assert verify_token(_encode(_payload(iss="platform")))["sub"] == "user-7"
