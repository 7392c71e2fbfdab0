"""Data access layer for conversations and messages."""

from .conversation_repo import ConversationRepository, canonical_pair
from .message_repo import CreateMessageData, MessageRepository, ReconcileReport

__all__ = [
    "ConversationRepository",
    "CreateMessageData",
    "MessageRepository",
    "ReconcileReport",
    "canonical_pair",
]
