"""Typing indicator commands."""

from __future__ import annotations

import logging

from parley.core.errors import StorageError
from parley.db.time import epoch_millis
from parley.realtime.dispatch import Acknowledgment, Handler, RealtimeContext
from parley.realtime.gateway import ClientConnection
from parley.schemas.realtime import CheckTypingData, TypingData

logger = logging.getLogger(__name__)


def _typing_event(data: TypingData, user_id: str) -> dict[str, str | int]:
    return {
        "conversationId": data.conversation_id,
        "userId": user_id,
        "timestamp": epoch_millis(),
    }


async def typing_start(
    ctx: RealtimeContext, conn: ClientConnection, data: TypingData, ack: Acknowledgment
) -> None:
    try:
        await ctx.ephemeral.start_typing(data.conversation_id, conn.user_id)
    except StorageError as exc:
        logger.warning("Typing marker not stored for %s: %s", conn.user_id, exc.message)
    await ctx.gateway.emit_to_user(data.receiver_id, "user_typing", _typing_event(data, conn.user_id))


async def typing_stop(
    ctx: RealtimeContext, conn: ClientConnection, data: TypingData, ack: Acknowledgment
) -> None:
    try:
        await ctx.ephemeral.stop_typing(data.conversation_id, conn.user_id)
    except StorageError as exc:
        logger.warning("Typing marker not cleared for %s: %s", conn.user_id, exc.message)
    await ctx.gateway.emit_to_user(
        data.receiver_id, "user_stopped_typing", _typing_event(data, conn.user_id)
    )


async def check_typing(
    ctx: RealtimeContext, conn: ClientConnection, data: CheckTypingData, ack: Acknowledgment
) -> None:
    is_typing = await ctx.ephemeral.is_typing(data.conversation_id, data.user_id)
    await ack(isTyping=is_typing)


HANDLERS: dict[str, Handler] = {
    "typing_start": typing_start,
    "typing_stop": typing_stop,
    "check_typing": check_typing,
}
