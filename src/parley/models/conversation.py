"""Model describing a two-party conversation."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from parley.db.session import Base
from parley.db.time import utcnow

PREVIEW_MAX_LENGTH = 500


def _new_id() -> str:
    return str(uuid.uuid4())


class Conversation(Base):
    """Durable identity of a chat thread between two users.

    Participants are stored in canonical order (lexicographically smaller id
    first) so that one unordered pair always maps to exactly one row; the
    unique constraint on the ordered pair is the final arbiter under
    concurrent first contact.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint(
            "participant_one_id",
            "participant_two_id",
            name="uq_conversations_participants",
        ),
        Index("ix_conversations_participant_one", "participant_one_id"),
        Index("ix_conversations_participant_two", "participant_two_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    participant_one_id: Mapped[str] = mapped_column(String(128), nullable=False)
    participant_two_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # Denormalized for conversation list sorting; display hint only.
    last_message_preview: Mapped[str | None] = mapped_column(
        String(PREVIEW_MAX_LENGTH), nullable=True
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    is_blocked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    blocked_by: Mapped[str | None] = mapped_column(String(128), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    @property
    def participants(self) -> tuple[str, str]:
        """Return both participant ids in canonical order."""
        return self.participant_one_id, self.participant_two_id

    def has_participant(self, user_id: str) -> bool:
        """Return True if ``user_id`` is one of the two participants."""
        return user_id in self.participants

    def other_participant(self, user_id: str) -> str:
        """Return the participant that is not ``user_id``."""
        if user_id == self.participant_one_id:
            return self.participant_two_id
        return self.participant_one_id
