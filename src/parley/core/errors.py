"""Error taxonomy shared by the chat core, the REST surface, and the gateway."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for all chat-domain failures.

    Attributes:
        status_code: HTTP status used when the error surfaces through REST.
        message: Human-readable reason, safe to show to the requesting client.
    """

    status_code: int = 500

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__doc__ or self.__class__.__name__
        super().__init__(self.message)


class ConfigurationError(ChatError):
    """Process misconfiguration detected at startup."""


class ValidationError(ChatError):
    """Missing or malformed input."""

    status_code = 400


class EmptyContent(ValidationError):
    """Message content cannot be empty."""


class TooLong(ValidationError):
    """Message content exceeds the maximum length."""


class AuthenticationError(ChatError):
    """Missing or invalid credentials."""

    status_code = 401


class Unauthorized(ChatError):
    """Caller is not allowed to perform this action."""

    status_code = 403


class NotFound(ChatError):
    """Referenced conversation or message does not exist."""

    status_code = 404


class ConversationBlocked(ChatError):
    """Cannot send message to blocked conversation."""

    status_code = 409


class DecryptionError(ChatError):
    """Failed to decrypt message."""


class StorageError(ChatError):
    """Underlying persistence or cache failure."""


__all__ = [
    "AuthenticationError",
    "ChatError",
    "ConfigurationError",
    "ConversationBlocked",
    "DecryptionError",
    "EmptyContent",
    "NotFound",
    "StorageError",
    "TooLong",
    "Unauthorized",
    "ValidationError",
]
