"""Pydantic schemas for the chat API and realtime protocol."""

from .chat import (
    ChatMessage,
    ConversationSummary,
    SendMessageParams,
)

__all__ = ["ChatMessage", "ConversationSummary", "SendMessageParams"]
