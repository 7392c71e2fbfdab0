"""initial chat schema

Revision ID: 5c1e9a2f7b40
Revises:
Create Date: 2026-10-19 09:12:44.318205

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "5c1e9a2f7b40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MESSAGE_TYPES = ("text", "image", "video", "file")


def upgrade() -> None:
    """Create conversations, message metadata, and message payloads."""
    op.create_table(
        "conversations",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("participant_one_id", sa.String(length=128), nullable=False),
        sa.Column("participant_two_id", sa.String(length=128), nullable=False),
        sa.Column("last_message_preview", sa.String(length=500), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_blocked", sa.Boolean(), nullable=False),
        sa.Column("blocked_by", sa.String(length=128), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "participant_one_id",
            "participant_two_id",
            name="uq_conversations_participants",
        ),
    )
    op.create_index("ix_conversations_participant_one", "conversations", ["participant_one_id"])
    op.create_index("ix_conversations_participant_two", "conversations", ["participant_two_id"])

    op.create_table(
        "message_metadata",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("conversation_id", sa.String(length=36), nullable=False),
        sa.Column("payload_id", sa.String(length=32), nullable=False),
        sa.Column("sender_id", sa.String(length=128), nullable=False),
        sa.Column("receiver_id", sa.String(length=128), nullable=False),
        sa.Column("message_type", sa.Enum(*MESSAGE_TYPES, name="message_type"), nullable=False),
        sa.Column("is_delivered", sa.Boolean(), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_deleted", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_message_metadata_conversation_created",
        "message_metadata",
        ["conversation_id", "created_at"],
    )
    op.create_index(
        "ix_message_metadata_receiver_read", "message_metadata", ["receiver_id", "is_read"]
    )
    op.create_index("ix_message_metadata_sender", "message_metadata", ["sender_id"])
    op.create_index("ix_message_metadata_payload", "message_metadata", ["payload_id"])

    # The message_type enum already exists on Postgres at this point.
    payload_type = sa.Enum(*MESSAGE_TYPES, name="message_type").with_variant(
        postgresql.ENUM(*MESSAGE_TYPES, name="message_type", create_type=False),
        "postgresql",
    )
    op.create_table(
        "message_payloads",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("conversation_id", sa.String(length=36), nullable=False),
        sa.Column("sender_id", sa.String(length=128), nullable=False),
        sa.Column("receiver_id", sa.String(length=128), nullable=False),
        sa.Column("message_type", payload_type, nullable=False),
        sa.Column("encrypted_content", sa.Text(), nullable=True),
        sa.Column("media_url", sa.Text(), nullable=True),
        sa.Column("media_type", sa.String(length=255), nullable=True),
        sa.Column("media_size", sa.BigInteger(), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("reply_to_message_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_message_payloads_conversation_created",
        "message_payloads",
        ["conversation_id", "created_at"],
    )
    op.create_index(
        "ix_message_payloads_sender_created", "message_payloads", ["sender_id", "created_at"]
    )


def downgrade() -> None:
    """Drop the chat schema."""
    op.drop_table("message_payloads")
    op.drop_table("message_metadata")
    op.drop_table("conversations")
    sa.Enum(name="message_type").drop(op.get_bind(), checkfirst=True)
