"""
Tests for JWT service functionality.
"""

from datetime import timedelta

import jwt

from services.jwt_service import TokenPayload, jwt_service


def _payload(**overrides):
    values = {"sub": "42", "email": "paul@clinic.example.com", "role": "provider", "name": "Dr. Paul Provider"}
    values.update(overrides)
    return TokenPayload(**values)


class TestJWTService:
    """Test JWT token creation and validation."""

    def test_create_and_verify(self):
        """A freshly issued token round-trips its claims."""
        token = jwt_service.create_access_token(_payload())
        verified = jwt_service.verify_token(token)

        assert verified is not None
        assert verified.sub == "42"
        assert verified.role == "provider"
        assert verified.user_id == 42
        assert verified.exp > verified.iat

    def test_expired_token(self):
        token = jwt_service.create_access_token(_payload(), expires_delta=timedelta(seconds=-1))
        assert jwt_service.verify_token(token) is None

    def test_wrong_signature(self):
        token = jwt.encode(
            {"sub": "42", "email": "x@example.com", "role": "admin", "name": "X"},
            "not-the-secret",
            algorithm="HS256",
        )
        assert jwt_service.verify_token(token) is None

    def test_garbage_token(self):
        assert jwt_service.verify_token("not.a.jwt") is None

    def test_non_numeric_subject(self):
        assert _payload(sub="google-oauth2|123").user_id is None
