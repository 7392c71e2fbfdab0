"""Chat commands: send, receipts, history, deletion, and unread counts."""

from __future__ import annotations

import logging

from parley.db.time import utcnow
from parley.realtime.dispatch import Acknowledgment, Handler, RealtimeContext
from parley.realtime.gateway import ClientConnection
from parley.schemas.chat import MessageFields, SendMessageParams
from parley.schemas.realtime import (
    DeleteMessageData,
    FetchMessagesData,
    MessageDeliveredData,
    MessagesReadData,
    PageData,
    UnreadCountData,
)

logger = logging.getLogger(__name__)


async def send_message(
    ctx: RealtimeContext, conn: ClientConnection, data: MessageFields, ack: Acknowledgment
) -> None:
    """Persist the message, acknowledge the sender, then push to the receiver."""
    params = SendMessageParams(sender_id=conn.user_id, **data.model_dump())
    message = await ctx.chat.send(params)
    wire = message.to_wire()
    await ack(message=wire)

    delivered = await ctx.gateway.emit_to_user(params.receiver_id, "new_message", wire)
    logger.info(
        "Message sent from %s to %s (%d live connections)",
        params.sender_id,
        params.receiver_id,
        delivered,
    )


async def message_delivered(
    ctx: RealtimeContext, conn: ClientConnection, data: MessageDeliveredData, ack: Acknowledgment
) -> None:
    if not data.message_id:
        return
    metadata = await ctx.chat.mark_delivered(data.message_id)
    if metadata is None:
        logger.debug("Delivery receipt for unknown message %s", data.message_id)
        return
    await ctx.gateway.emit_to_user(
        metadata.sender_id,
        "message_delivered",
        {
            "messageId": metadata.id,
            "deliveredAt": (metadata.delivered_at or utcnow()).isoformat(),
        },
    )


async def messages_read(
    ctx: RealtimeContext, conn: ClientConnection, data: MessagesReadData, ack: Acknowledgment
) -> None:
    """Mark messages read and tell each sender which of their messages were read."""
    by_sender = await ctx.chat.mark_read(data.message_ids, conn.user_id)
    await ack()

    read_at = utcnow().isoformat()
    for sender_id, message_ids in by_sender.items():
        await ctx.gateway.emit_to_user(
            sender_id,
            "messages_read",
            {"messageIds": message_ids, "readAt": read_at, "readBy": conn.user_id},
        )


async def fetch_messages(
    ctx: RealtimeContext, conn: ClientConnection, data: FetchMessagesData, ack: Acknowledgment
) -> None:
    messages, total = await ctx.chat.history(
        data.conversation_id, data.page, data.limit, requester_id=conn.user_id
    )
    await ack(data={"messages": [m.to_wire() for m in messages], "total": total})


async def fetch_conversations(
    ctx: RealtimeContext, conn: ClientConnection, data: PageData, ack: Acknowledgment
) -> None:
    conversations, total = await ctx.chat.conversations(conn.user_id, data.page, data.limit)
    await ack(data={"conversations": [c.to_wire() for c in conversations], "total": total})


async def delete_message(
    ctx: RealtimeContext, conn: ClientConnection, data: DeleteMessageData, ack: Acknowledgment
) -> None:
    await ctx.chat.delete(data.message_id, conn.user_id)


async def get_unread_count(
    ctx: RealtimeContext, conn: ClientConnection, data: UnreadCountData, ack: Acknowledgment
) -> None:
    count = await ctx.chat.unread_count(conn.user_id, data.conversation_id)
    await ack(unreadCount=count)


HANDLERS: dict[str, Handler] = {
    "send_message": send_message,
    "message_delivered": message_delivered,
    "messages_read": messages_read,
    "fetch_messages": fetch_messages,
    "fetch_conversations": fetch_conversations,
    "delete_message": delete_message,
    "get_unread_count": get_unread_count,
}
