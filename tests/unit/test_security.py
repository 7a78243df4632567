"""Tests for access token signing and decoding."""

from datetime import timedelta

from jose import jwt

from app.core.config import get_settings
from app.core.security import create_access_token, decode_access_token


class TestAccessTokens:

    def test_round_trip_claims(self):
        payload = decode_access_token(create_access_token("partner-1", is_admin=True))

        assert payload["sub"] == "partner-1"
        assert payload["is_admin"] is True
        assert payload["type"] == "access"

    def test_partner_token_is_not_admin(self):
        assert decode_access_token(create_access_token("partner-1"))["is_admin"] is False

    def test_expired_token(self):
        token = create_access_token("partner-1", expires_delta=timedelta(seconds=-5))
        assert decode_access_token(token) is None

    def test_wrong_secret(self):
        settings = get_settings()
        token = jwt.encode({"sub": "partner-1", "type": "access"}, "other-secret", algorithm=settings.jwt_algorithm)
        assert decode_access_token(token) is None

    def test_wrong_token_type(self):
        settings = get_settings()
        token = jwt.encode(
            {"sub": "partner-1", "type": "refresh"},
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )
        assert decode_access_token(token) is None

    def test_garbage(self):
        assert decode_access_token("not-a-token") is None
