"""Chat orchestration across the conversation directory, message store, and codec.

``ChatService.send`` is the only code path that writes to both the
conversation directory and the message store.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import timedelta

from parley.core.errors import ChatError, ConversationBlocked, DecryptionError, NotFound, Unauthorized
from parley.models.message import MessageMetadata, MessagePayload, MessageType
from parley.repositories.conversation_repo import ConversationRepository
from parley.repositories.message_repo import CreateMessageData, MessageRepository, ReconcileReport
from parley.schemas.chat import ChatMessage, ConversationSummary, SendMessageParams
from parley.services.encryption import MessageCodec

logger = logging.getLogger(__name__)

ENCRYPTED_PLACEHOLDER = "[Encrypted message]"
TEXT_PREVIEW_LENGTH = 100
MEDIA_PREVIEW_LABELS = {
    MessageType.IMAGE: "Photo",
    MessageType.VIDEO: "Video",
}


def message_preview(params: SendMessageParams) -> str:
    """Return the conversation-list preview for a message about to be sent.

    Text previews are cut from the submitted content so the cut never lands
    inside an escape sequence.
    """
    if params.message_type is MessageType.TEXT:
        return (params.content or "")[:TEXT_PREVIEW_LENGTH]
    if params.message_type is MessageType.FILE:
        return params.file_name or "File"
    return MEDIA_PREVIEW_LABELS.get(params.message_type, "Message")


class ChatService:
    """High-level chat operations used by the gateway and the REST routes."""

    def __init__(
        self,
        directory: ConversationRepository,
        store: MessageRepository,
        codec: MessageCodec,
    ) -> None:
        self.directory = directory
        self.store = store
        self.codec = codec

    async def send(self, params: SendMessageParams) -> ChatMessage:
        """Persist a message and return it in decrypted form.

        Raises:
            ConversationBlocked: If either participant has blocked the conversation.
            ValidationError: If the text body is empty or too long.
            StorageError: If either store write fails.
        """
        try:
            conversation = await self.directory.resolve_or_create(
                params.sender_id, params.receiver_id
            )
            if await self.directory.is_blocked(conversation.id):
                raise ConversationBlocked("Cannot send message to blocked conversation")

            data = CreateMessageData(
                conversation_id=conversation.id,
                sender_id=params.sender_id,
                receiver_id=params.receiver_id,
                message_type=params.message_type,
                media_url=params.media_url,
                media_type=params.media_type,
                media_size=params.media_size,
                file_name=params.file_name,
                thumbnail_url=params.thumbnail_url,
                reply_to_message_id=params.reply_to_message_id,
            )
            if params.message_type is MessageType.TEXT:
                _, data.encrypted_content = self.codec.seal(params.content)

            payload, metadata = await self.store.create(data)
            await self.directory.update_preview(
                conversation.id,
                message_preview(params),
                metadata.created_at,
            )
        except ChatError as exc:
            logger.error("Error sending message from %s: %s", params.sender_id, exc.message)
            raise

        return self.format_message(payload, metadata)

    async def history(
        self,
        conversation_id: str,
        page: int = 1,
        page_size: int = 50,
        requester_id: str | None = None,
    ) -> tuple[list[ChatMessage], int]:
        """Return one page of decrypted history, newest first.

        When ``requester_id`` is given it must be a participant of the conversation.
        """
        try:
            if requester_id is not None:
                conversation = await self.directory.get(conversation_id)
                if conversation is None:
                    raise NotFound("Conversation not found")
                if not conversation.has_participant(requester_id):
                    raise Unauthorized("Not a participant of this conversation")
            items, total = await self.store.fetch_by_conversation(
                conversation_id, page, page_size
            )
        except ChatError as exc:
            logger.error("Error getting conversation history: %s", exc.message)
            raise

        return [self.format_message(payload, metadata) for payload, metadata in items], total

    async def conversations(
        self,
        user_id: str,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[ConversationSummary], int]:
        """Return the user's conversations with per-conversation unread counts."""
        try:
            rows, total = await self.directory.list_for_user(user_id, page, page_size)
            unread = await self.store.unread_counts(user_id, [row.id for row in rows])
        except ChatError as exc:
            logger.error("Error getting user conversations: %s", exc.message)
            raise

        summaries = [
            ConversationSummary(
                id=row.id,
                participant1_id=row.participant_one_id,
                participant2_id=row.participant_two_id,
                last_message_at=row.last_message_at,
                last_message_preview=row.last_message_preview,
                is_blocked=row.is_blocked,
                blocked_by=row.blocked_by,
                unread_count=unread.get(row.id, 0),
            )
            for row in rows
        ]
        return summaries, total

    async def mark_read(self, message_ids: list[str], user_id: str) -> dict[str, list[str]]:
        """Mark messages read and group the affected ids by their sender.

        ``user_id`` is recorded in logs only; it is not checked against the
        receiver of each message.
        """
        try:
            rows = await self.store.mark_read(message_ids)
        except ChatError as exc:
            logger.error("Error marking messages as read: %s", exc.message)
            raise

        by_sender: dict[str, list[str]] = defaultdict(list)
        for row in rows:
            by_sender[row.sender_id].append(row.id)
        logger.debug("%d messages marked as read by %s", len(rows), user_id)
        return dict(by_sender)

    async def mark_delivered(self, message_id: str) -> MessageMetadata | None:
        """Mark one message delivered."""
        try:
            return await self.store.mark_delivered(message_id)
        except ChatError as exc:
            logger.error("Error marking message as delivered: %s", exc.message)
            raise

    async def delete(self, message_id: str, user_id: str) -> None:
        """Soft-delete a message on behalf of its sender."""
        try:
            await self.store.soft_delete(message_id, user_id)
        except ChatError as exc:
            logger.error("Error deleting message: %s", exc.message)
            raise

    async def block(self, conversation_id: str, user_id: str) -> None:
        try:
            await self.directory.block(conversation_id, user_id)
        except ChatError as exc:
            logger.error("Error blocking conversation: %s", exc.message)
            raise

    async def unblock(self, conversation_id: str) -> None:
        try:
            await self.directory.unblock(conversation_id)
        except ChatError as exc:
            logger.error("Error unblocking conversation: %s", exc.message)
            raise

    async def unread_count(self, user_id: str, conversation_id: str | None = None) -> int:
        """Return the unread badge count; 0 if it cannot be computed."""
        try:
            return await self.store.unread_count(user_id, conversation_id)
        except Exception as exc:  # badge is best-effort
            logger.error("Error getting unread count: %s", exc)
            return 0

    async def reconcile(self, grace_seconds: int) -> ReconcileReport:
        """Run the dual-store reconciliation sweep."""
        return await self.store.reconcile(timedelta(seconds=grace_seconds))

    def format_message(self, payload: MessagePayload, metadata: MessageMetadata) -> ChatMessage:
        """Join payload and metadata into the client-facing shape."""
        content: str | None = None
        if payload.message_type is MessageType.TEXT and payload.encrypted_content:
            try:
                content = self.codec.decrypt(payload.encrypted_content)
            except DecryptionError:
                logger.error("Failed to decrypt message %s", metadata.id)
                content = ENCRYPTED_PLACEHOLDER

        return ChatMessage(
            id=metadata.id,
            conversation_id=metadata.conversation_id,
            sender_id=metadata.sender_id,
            receiver_id=metadata.receiver_id,
            message_type=metadata.message_type,
            content=content,
            media_url=payload.media_url,
            media_type=payload.media_type,
            media_size=payload.media_size,
            file_name=payload.file_name,
            thumbnail_url=payload.thumbnail_url,
            reply_to_message_id=payload.reply_to_message_id,
            is_delivered=metadata.is_delivered,
            is_read=metadata.is_read,
            delivered_at=metadata.delivered_at,
            read_at=metadata.read_at,
            created_at=metadata.created_at,
        )
