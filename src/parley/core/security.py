"""Bearer token issuing and verification built on python-jose."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Protocol

from jose import JWTError, jwt

from parley.core.errors import AuthenticationError
from parley.core.settings import Settings, settings

BEARER_SCHEME = "bearer"


class TokenVerifier(Protocol):
    """Authentication collaborator: bearer token in, user identifier out."""

    def verify(self, token: str) -> str:
        """Return the user id for ``token`` or raise ``AuthenticationError``."""


def create_access_token(
    user_id: str,
    extra_claims: dict[str, str] | None = None,
    *,
    config: Settings | None = None,
) -> str:
    """Create JWT access token for user authentication."""
    config = config or settings
    to_encode: dict[str, object] = {"sub": user_id}
    if extra_claims:
        to_encode.update(extra_claims)
    expire = datetime.now(UTC) + timedelta(minutes=config.access_token_expire_minutes)
    to_encode["exp"] = expire
    encoded_jwt: str = jwt.encode(
        to_encode,
        config.secret_key,
        algorithm=config.jwt_algorithm,
    )
    return encoded_jwt


def decode_access_token(token: str, *, config: Settings | None = None) -> dict[str, object]:
    """Decode and validate a JWT issued by ``create_access_token``.

    Raises:
        AuthenticationError: If the token is malformed, expired, or has no subject.
    """
    config = config or settings
    try:
        payload: dict[str, object] = jwt.decode(
            token,
            config.secret_key,
            algorithms=[config.jwt_algorithm],
        )
    except JWTError as err:
        raise AuthenticationError("Authentication error: Invalid token") from err

    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise AuthenticationError("Authentication error: Invalid token")
    return payload


def strip_bearer(raw: str | None) -> str | None:
    """Return the token part of an ``Authorization`` value, or ``None`` when blank."""
    if raw is None:
        return None
    parts = raw.split()
    if parts and parts[0].lower() == BEARER_SCHEME:
        parts = parts[1:]
    return parts[0] if len(parts) == 1 else None


class JWTTokenVerifier:
    """Verify HS256 access tokens issued by ``create_access_token``."""

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or settings

    def verify(self, token: str) -> str:
        payload = decode_access_token(token, config=self._config)
        return str(payload["sub"])
