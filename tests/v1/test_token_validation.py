# tests/v1/test_token_validation.py
"""Tests for access token issuing and verification."""

from datetime import UTC, datetime, timedelta

import pytest
from jose import jwt

from parley.core.errors import AuthenticationError
from parley.core.security import (
    JWTTokenVerifier,
    create_access_token,
    decode_access_token,
    strip_bearer,
)


class TestTokenVerification:
    def test_round_trip(self, test_settings):
        token = create_access_token("alice", config=test_settings)
        assert JWTTokenVerifier(test_settings).verify(token) == "alice"

    def test_extra_claims_are_kept(self, test_settings):
        token = create_access_token("alice", {"scope": "chat"}, config=test_settings)
        assert decode_access_token(token, config=test_settings)["scope"] == "chat"

    def test_expired_token(self, test_settings):
        token = jwt.encode(
            {"sub": "alice", "exp": datetime.now(UTC) - timedelta(minutes=1)},
            test_settings.secret_key,
            algorithm=test_settings.jwt_algorithm,
        )
        with pytest.raises(AuthenticationError):
            JWTTokenVerifier(test_settings).verify(token)

    def test_wrong_secret(self, test_settings):
        token = jwt.encode({"sub": "alice"}, "some-other-secret", algorithm="HS256")
        with pytest.raises(AuthenticationError):
            JWTTokenVerifier(test_settings).verify(token)

    def test_missing_subject(self, test_settings):
        token = jwt.encode(
            {"exp": datetime.now(UTC) + timedelta(minutes=5)},
            test_settings.secret_key,
            algorithm=test_settings.jwt_algorithm,
        )
        with pytest.raises(AuthenticationError) as exc_info:
            JWTTokenVerifier(test_settings).verify(token)
        assert exc_info.value.message == "Authentication error: Invalid token"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Bearer abc.def", "abc.def"),
        ("abc.def", "abc.def"),
        ("  Bearer   abc  ", "abc"),
        ("Bearer ", None),
        ("", None),
        (None, None),
    ],
)
def test_strip_bearer(raw, expected):
    assert strip_bearer(raw) == expected
