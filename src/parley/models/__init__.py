"""SQLAlchemy models for the Parley application."""

from .conversation import Conversation
from .message import MessageMetadata, MessagePayload, MessageType

__all__ = [
    "Conversation",
    "MessageMetadata",
    "MessagePayload",
    "MessageType",
]
