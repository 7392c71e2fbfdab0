# tests/services/test_chat_service.py
"""Tests for chat orchestration across the directory, the store, and the codec."""

import asyncio
from datetime import timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, func, select, update

from parley.core.errors import (
    ConversationBlocked,
    EmptyContent,
    NotFound,
    StorageError,
    Unauthorized,
    ValidationError,
)
from parley.db.time import utcnow
from parley.models import MessageMetadata, MessagePayload, MessageType
from parley.schemas.chat import SendMessageParams
from parley.services.chat_service import ENCRYPTED_PLACEHOLDER, message_preview


async def _count(database, model) -> int:
    async with database.session() as session:
        return int(await session.scalar(select(func.count()).select_from(model)))


def _text(sender: str, receiver: str, content: str) -> SendMessageParams:
    return SendMessageParams(
        sender_id=sender,
        receiver_id=receiver,
        message_type=MessageType.TEXT,
        content=content,
    )


class TestSend:
    @pytest.mark.asyncio
    async def test_send_returns_decrypted_message(self, chat_service):
        message = await chat_service.send(_text("alice", "bob", "Hello"))

        assert message.content == "Hello"
        assert message.sender_id == "alice"
        assert message.receiver_id == "bob"
        assert message.is_read is False
        assert message.is_delivered is False

    @pytest.mark.asyncio
    async def test_body_is_stored_encrypted(self, chat_service, document_db):
        message = await chat_service.send(_text("alice", "bob", "top secret"))

        async with document_db.session() as session:
            payload = (await session.execute(select(MessagePayload))).scalars().one()
        assert payload.encrypted_content != "top secret"
        assert "top secret" not in payload.encrypted_content
        assert message.content == "top secret"

    @pytest.mark.asyncio
    async def test_send_creates_one_conversation_per_pair(self, chat_service, conversation_repo):
        first = await chat_service.send(_text("alice", "bob", "hi"))
        second = await chat_service.send(_text("bob", "alice", "hey"))

        assert first.conversation_id == second.conversation_id
        conversations, total = await conversation_repo.list_for_user("alice")
        assert total == 1

    @pytest.mark.asyncio
    async def test_preview_is_cut_from_submitted_text(self, chat_service, conversation_repo):
        message = await chat_service.send(_text("alice", "bob", "x" * 98 + "<b>bold</b>"))

        conversation = await conversation_repo.get(message.conversation_id)
        assert conversation.last_message_preview == "x" * 98 + "<b"
        assert "&" not in conversation.last_message_preview
        assert len(conversation.last_message_preview) == 100
        assert conversation.last_message_at is not None

    @pytest.mark.asyncio
    async def test_image_preview_is_photo(self, chat_service, conversation_repo):
        message = await chat_service.send(
            SendMessageParams(
                sender_id="alice",
                receiver_id="bob",
                message_type=MessageType.IMAGE,
                media_url="https://cdn.example/img.png",
                media_type="image/png",
            )
        )

        conversation = await conversation_repo.get(message.conversation_id)
        assert conversation.last_message_preview == "Photo"
        assert message.content is None
        assert message.media_url == "https://cdn.example/img.png"

    @pytest.mark.asyncio
    async def test_blocked_conversation_rejects_send(self, chat_service):
        message = await chat_service.send(_text("alice", "bob", "hi"))
        await chat_service.block(message.conversation_id, "bob")

        with pytest.raises(ConversationBlocked) as exc_info:
            await chat_service.send(_text("alice", "bob", "are you there?"))
        assert exc_info.value.message == "Cannot send message to blocked conversation"

        # Neither direction goes through while blocked.
        with pytest.raises(ConversationBlocked):
            await chat_service.send(_text("bob", "alice", "nope"))

    @pytest.mark.asyncio
    async def test_blocked_send_writes_nothing(self, chat_service, metadata_db, document_db):
        message = await chat_service.send(_text("alice", "bob", "hi"))
        await chat_service.block(message.conversation_id, "bob")
        before = (await _count(metadata_db, MessageMetadata), await _count(document_db, MessagePayload))
        assert before == (1, 1)

        with pytest.raises(ConversationBlocked):
            await chat_service.send(_text("alice", "bob", "still there?"))

        after = (await _count(metadata_db, MessageMetadata), await _count(document_db, MessagePayload))
        assert after == before

    @pytest.mark.asyncio
    async def test_unblock_restores_sending(self, chat_service):
        message = await chat_service.send(_text("alice", "bob", "hi"))
        await chat_service.block(message.conversation_id, "alice")
        await chat_service.unblock(message.conversation_id)

        again = await chat_service.send(_text("bob", "alice", "back"))
        assert again.content == "back"

    @pytest.mark.asyncio
    async def test_blank_text_is_rejected_before_storage(self, chat_service, message_repo):
        with pytest.raises(EmptyContent):
            await chat_service.send(_text("alice", "bob", "   "))

    @pytest.mark.asyncio
    async def test_cannot_message_yourself(self, chat_service):
        with pytest.raises(ValidationError):
            await chat_service.send(_text("alice", "alice", "hi me"))


class TestMessageFieldsInvariant:
    def test_text_with_media_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            SendMessageParams(
                sender_id="alice",
                receiver_id="bob",
                message_type=MessageType.TEXT,
                content="hi",
                media_url="https://cdn.example/x.png",
            )

    def test_media_with_content_is_rejected(self):
        with pytest.raises(PydanticValidationError):
            SendMessageParams(
                sender_id="alice",
                receiver_id="bob",
                message_type=MessageType.VIDEO,
                content="caption",
                media_url="https://cdn.example/v.mp4",
            )

    def test_media_requires_url(self):
        with pytest.raises(PydanticValidationError):
            SendMessageParams(sender_id="alice", receiver_id="bob", message_type=MessageType.FILE)

    def test_camel_case_input_is_accepted(self):
        params = SendMessageParams.model_validate(
            {"senderId": "alice", "receiverId": "bob", "messageType": "text", "content": "hi"}
        )
        assert params.receiver_id == "bob"


@pytest.mark.parametrize(
    ("message_type", "file_name", "expected"),
    [
        (MessageType.IMAGE, None, "Photo"),
        (MessageType.VIDEO, None, "Video"),
        (MessageType.FILE, "report.pdf", "report.pdf"),
        (MessageType.FILE, None, "File"),
    ],
)
def test_media_previews(message_type, file_name, expected):
    params = SendMessageParams(
        sender_id="alice",
        receiver_id="bob",
        message_type=message_type,
        media_url="https://cdn.example/x",
        file_name=file_name,
    )
    assert message_preview(params) == expected


class TestHistory:
    @pytest.mark.asyncio
    async def test_history_is_newest_first(self, chat_service):
        for text in ("one", "two", "three"):
            await chat_service.send(_text("alice", "bob", text))
            await asyncio.sleep(0.01)
        conversation_id = (await chat_service.send(_text("alice", "bob", "four"))).conversation_id

        messages, total = await chat_service.history(conversation_id, 1, 2)

        assert total == 4
        assert [m.content for m in messages] == ["four", "three"]

    @pytest.mark.asyncio
    async def test_undecryptable_body_becomes_placeholder(self, chat_service, document_db):
        good = await chat_service.send(_text("alice", "bob", "readable"))
        bad = await chat_service.send(_text("alice", "bob", "will be corrupted"))
        bad_metadata = await chat_service.store.get_metadata(bad.id)
        async with document_db.session() as session:
            await session.execute(
                update(MessagePayload)
                .where(MessagePayload.id == bad_metadata.payload_id)
                .values(encrypted_content="gAAAAA-corrupted")
            )
            await session.commit()

        messages, _ = await chat_service.history(good.conversation_id)

        contents = {m.id: m.content for m in messages}
        assert contents == {good.id: "readable", bad.id: ENCRYPTED_PLACEHOLDER}

    @pytest.mark.asyncio
    async def test_requester_must_be_participant(self, chat_service):
        message = await chat_service.send(_text("alice", "bob", "private"))

        with pytest.raises(Unauthorized):
            await chat_service.history(message.conversation_id, requester_id="mallory")

    @pytest.mark.asyncio
    async def test_unknown_conversation_with_requester(self, chat_service):
        with pytest.raises(NotFound):
            await chat_service.history("missing", requester_id="alice")


class TestConversations:
    @pytest.mark.asyncio
    async def test_summaries_carry_unread_counts(self, chat_service):
        await chat_service.send(_text("alice", "bob", "1"))
        await chat_service.send(_text("alice", "bob", "2"))
        await chat_service.send(_text("carol", "bob", "hey"))

        summaries, total = await chat_service.conversations("bob")

        assert total == 2
        counts = {
            ({s.participant1_id, s.participant2_id} - {"bob"}).pop(): s.unread_count
            for s in summaries
        }
        assert counts == {"alice": 2, "carol": 1}

    @pytest.mark.asyncio
    async def test_summary_wire_shape(self, chat_service):
        await chat_service.send(_text("alice", "bob", "hi"))
        summaries, _ = await chat_service.conversations("alice")

        wire = summaries[0].to_wire()
        assert wire["participant1Id"] == "alice"
        assert wire["participant2Id"] == "bob"
        assert wire["lastMessagePreview"] == "hi"
        assert wire["unreadCount"] == 0


class TestReceipts:
    @pytest.mark.asyncio
    async def test_mark_read_groups_by_sender(self, chat_service):
        a1 = await chat_service.send(_text("alice", "bob", "a1"))
        a2 = await chat_service.send(_text("alice", "bob", "a2"))
        c1 = await chat_service.send(_text("carol", "bob", "c1"))

        grouped = await chat_service.mark_read([a1.id, a2.id, c1.id, "unknown"], "bob")

        assert sorted(grouped["alice"]) == sorted([a1.id, a2.id])
        assert grouped["carol"] == [c1.id]
        assert await chat_service.unread_count("bob") == 0

    @pytest.mark.asyncio
    async def test_mark_delivered_sets_timestamp_once(self, chat_service):
        message = await chat_service.send(_text("alice", "bob", "hi"))

        first = await chat_service.mark_delivered(message.id)
        second = await chat_service.mark_delivered(message.id)

        assert first.is_delivered is True
        assert second.delivered_at == first.delivered_at

    @pytest.mark.asyncio
    async def test_delete_requires_sender(self, chat_service):
        message = await chat_service.send(_text("alice", "bob", "oops"))

        with pytest.raises(Unauthorized):
            await chat_service.delete(message.id, "bob")

        await chat_service.delete(message.id, "alice")
        messages, total = await chat_service.history(message.conversation_id)
        assert messages == []
        assert total == 0


class TestUnreadCount:
    @pytest.mark.asyncio
    async def test_counts_only_messages_to_user(self, chat_service):
        message = await chat_service.send(_text("alice", "bob", "hi"))
        await chat_service.send(_text("bob", "alice", "hello"))

        assert await chat_service.unread_count("bob") == 1
        assert await chat_service.unread_count("bob", message.conversation_id) == 1
        assert await chat_service.unread_count("bob", "other-conversation") == 0

    @pytest.mark.asyncio
    async def test_failure_degrades_to_zero(self, chat_service, mocker):
        mocker.patch.object(
            chat_service.store,
            "unread_count",
            side_effect=StorageError("database unavailable"),
        )
        assert await chat_service.unread_count("bob") == 0


class TestReconcile:
    @pytest.mark.asyncio
    async def test_reconcile_soft_deletes_message_without_payload(
        self, chat_service, document_db, metadata_db
    ):
        message = await chat_service.send(_text("alice", "bob", "gone soon"))
        async with metadata_db.session() as session:
            await session.execute(
                update(MessageMetadata)
                .where(MessageMetadata.id == message.id)
                .values(created_at=utcnow() - timedelta(hours=1))
            )
            await session.commit()
        async with document_db.session() as session:
            await session.execute(delete(MessagePayload))
            await session.commit()

        report = await chat_service.reconcile(0)

        assert report.dangling_metadata_ids == [message.id]
        assert report.orphaned_payload_ids == []
        async with metadata_db.session() as session:
            row = await session.get(MessageMetadata, message.id)
        assert row.is_deleted is True
