"""Message body validation, sanitization, and symmetric encryption.

Text bodies are stored as Fernet tokens (AES-CBC with an HMAC-SHA256 tag) from
the ``cryptography`` package. The Fernet key is derived from the process-wide
``CHAT_ENCRYPTION_KEY`` secret.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken

from parley.core.errors import ConfigurationError, DecryptionError, EmptyContent, TooLong
from parley.core.settings import DEFAULT_ENCRYPTION_KEY


MAX_MESSAGE_LENGTH = 5000

# Markup-significant characters and their entity escapes. '&' is deliberately
# absent so escaping an already escaped string changes nothing.
_ESCAPES = {
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
}
_ESCAPE_TABLE = str.maketrans(_ESCAPES)


def validate_content(content: str | None, max_length: int = MAX_MESSAGE_LENGTH) -> str:
    """Return ``content`` unchanged if it is a sendable text body.

    Raises:
        EmptyContent: If the content is missing or whitespace only.
        TooLong: If the content is longer than ``max_length`` characters.
    """
    if content is None or not content.strip():
        raise EmptyContent("Message content cannot be empty")
    if len(content) > max_length:
        raise TooLong(f"Message exceeds maximum length of {max_length} characters")
    return content


def sanitize_content(content: str) -> str:
    """Escape markup-significant characters. Idempotent."""
    return content.translate(_ESCAPE_TABLE)


def derive_fernet_key(secret: str) -> bytes:
    """Derive a urlsafe base64 Fernet key from an arbitrary secret string."""
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


class MessageCodec:
    """Encrypts and decrypts message text with one process-wide key."""

    def __init__(self, secret: str | None, *, max_length: int = MAX_MESSAGE_LENGTH) -> None:
        """Build the codec.

        Args:
            secret: Value of ``CHAT_ENCRYPTION_KEY``.
            max_length: Longest accepted text body.

        Raises:
            ConfigurationError: If the secret is unset or the well-known default.
        """
        if not secret or not secret.strip():
            raise ConfigurationError("CHAT_ENCRYPTION_KEY must be set")
        if secret == DEFAULT_ENCRYPTION_KEY:
            raise ConfigurationError("CHAT_ENCRYPTION_KEY is the well-known default key")
        self._fernet = Fernet(derive_fernet_key(secret))
        self.max_length = max_length

    def encrypt(self, plaintext: str) -> str:
        """Return the ciphertext token for ``plaintext``."""
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """Return the plaintext for ``ciphertext``.

        Raises:
            DecryptionError: If the token is malformed, tampered with, produced
                under another key, or decrypts to an empty string.
        """
        try:
            plaintext = self._fernet.decrypt(ciphertext.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError, ValueError) as err:
            raise DecryptionError("Failed to decrypt message") from err
        if not plaintext:
            raise DecryptionError("Decryption resulted in empty string")
        return plaintext

    def validate(self, content: str | None) -> str:
        """Validate a text body against this codec's length cap."""
        return validate_content(content, self.max_length)

    def seal(self, content: str | None) -> tuple[str, str]:
        """Validate, sanitize, then encrypt a text body.

        Returns:
            Tuple of (sanitized_plaintext, ciphertext)
        """
        sanitized = sanitize_content(self.validate(content))
        return sanitized, self.encrypt(sanitized)
