"""Chat-related Pydantic schemas.

Wire payloads use camelCase keys; snake_case input is accepted as well.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from parley.models.message import MessageType

MEDIA_FIELDS = ("media_url", "media_type", "media_size", "file_name", "thumbnail_url")


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        """Return a JSON-compatible dict using the camelCase aliases."""
        return self.model_dump(mode="json", by_alias=True)


class MessageFields(CamelModel):
    """Content of a message as supplied by the sender."""

    receiver_id: str = Field(..., min_length=1, description="Recipient user id")
    message_type: MessageType = Field(..., description="text, image, video or file")
    content: str | None = Field(None, description="Plain text body (text messages only)")
    media_url: str | None = None
    media_type: str | None = Field(None, description="MIME type of the media")
    media_size: int | None = Field(None, ge=0)
    file_name: str | None = None
    thumbnail_url: str | None = None
    reply_to_message_id: str | None = None

    @model_validator(mode="after")
    def check_type_fields(self) -> MessageFields:
        """Text carries only a body; media messages carry only media fields."""
        if self.message_type is MessageType.TEXT:
            present = [name for name in MEDIA_FIELDS if getattr(self, name) is not None]
            if present:
                raise ValueError(f"text messages cannot carry media fields: {', '.join(present)}")
        else:
            if not self.media_url:
                raise ValueError(f"mediaUrl is required for {self.message_type.value} messages")
            if self.content is not None:
                raise ValueError("content is only allowed for text messages")
        return self


class SendMessageParams(MessageFields):
    """Everything the chat service needs to send one message."""

    sender_id: str = Field(..., min_length=1)


class SendMessageRequest(MessageFields):
    """Body of ``POST /chat/messages``; the sender comes from the bearer token."""


class ChatMessage(CamelModel):
    """A message in its decrypted, client-facing shape."""

    id: str
    conversation_id: str
    sender_id: str
    receiver_id: str
    message_type: MessageType
    content: str | None = None
    media_url: str | None = None
    media_type: str | None = None
    media_size: int | None = None
    file_name: str | None = None
    thumbnail_url: str | None = None
    reply_to_message_id: str | None = None
    is_delivered: bool = False
    is_read: bool = False
    delivered_at: datetime | None = None
    read_at: datetime | None = None
    created_at: datetime


class ConversationSummary(CamelModel):
    """One row of a user's conversation list."""

    id: str
    participant1_id: str
    participant2_id: str
    last_message_at: datetime | None = None
    last_message_preview: str | None = None
    is_blocked: bool = False
    blocked_by: str | None = None
    unread_count: int = 0


class ConversationPage(CamelModel):
    """Paged conversation list."""

    conversations: list[ConversationSummary]
    total: int


class MessagePage(CamelModel):
    """Paged conversation history."""

    messages: list[ChatMessage]
    total: int


class MarkReadRequest(CamelModel):
    """Body of ``POST /chat/messages/read``."""

    message_ids: list[str] = Field(..., min_length=1)


class UnreadCountResponse(CamelModel):
    unread_count: int


class SuccessResponse(CamelModel):
    success: bool = True


class MediaUploadResponse(CamelModel):
    """Media fields ready to be passed to ``send_message``."""

    message_type: MessageType
    media_url: str
    media_type: str
    media_size: int
    file_name: str
    thumbnail_url: str | None = None
    width: int | None = None
    height: int | None = None
