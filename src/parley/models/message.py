"""Models describing direct messages between users.

A message is one logical object stored as two records: a payload document in
the document store (encrypted text or a media reference) and a metadata row in
the relational store that tracks delivery and read state. The metadata row
references its payload through ``payload_id``.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, DateTime, Enum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from parley.db.session import Base, DocumentBase
from parley.db.time import utcnow


class MessageType(str, enum.Enum):
    """Closed set of message kinds."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"


def _message_type_enum() -> Enum:
    # One type object per table; the two tables belong to different metadata.
    return Enum(
        MessageType,
        name="message_type",
        values_callable=lambda members: [member.value for member in members],
    )


def _new_metadata_id() -> str:
    return str(uuid.uuid4())


def _new_document_id() -> str:
    return uuid.uuid4().hex


class MessagePayload(DocumentBase):
    """Message content as stored in the document store."""

    __tablename__ = "message_payloads"
    __table_args__ = (
        Index("ix_message_payloads_conversation_created", "conversation_id", "created_at"),
        Index("ix_message_payloads_sender_created", "sender_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_document_id)
    conversation_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(128), nullable=False)
    message_type: Mapped[MessageType] = mapped_column(_message_type_enum(), nullable=False)

    # Present only for text messages.
    encrypted_content: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Present only for image/video/file messages.
    media_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    media_type: Mapped[str | None] = mapped_column(String(255), nullable=True)
    media_size: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Weak reference to another message's metadata id.
    reply_to_message_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class MessageMetadata(Base):
    """Delivery and read lifecycle of a message.

    ``is_delivered``, ``is_read`` and ``is_deleted`` only ever move from False
    to True. ``created_at`` is the authoritative ordering timestamp.
    """

    __tablename__ = "message_metadata"
    __table_args__ = (
        Index("ix_message_metadata_conversation_created", "conversation_id", "created_at"),
        Index("ix_message_metadata_receiver_read", "receiver_id", "is_read"),
        Index("ix_message_metadata_sender", "sender_id"),
        Index("ix_message_metadata_payload", "payload_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_metadata_id)
    conversation_id: Mapped[str] = mapped_column(String(36), nullable=False)
    payload_id: Mapped[str] = mapped_column(String(32), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(128), nullable=False)
    message_type: Mapped[MessageType] = mapped_column(_message_type_enum(), nullable=False)

    is_delivered: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
