"""Presence: join/leave announcements and status queries.

Who hears about a user's presence changes depends on ``PRESENCE_SCOPE``:
``contacts`` limits announcements to the user's conversation partners,
``broadcast`` sends them to every other connected user.
"""

from __future__ import annotations

import logging

from parley.core.errors import ChatError
from parley.db.time import epoch_millis
from parley.realtime.dispatch import Acknowledgment, Handler, RealtimeContext
from parley.realtime.gateway import ClientConnection
from parley.schemas.realtime import EmptyData, UserStatusData, UsersStatusData
from parley.services.ephemeral import presence_payload

logger = logging.getLogger(__name__)


async def audience(ctx: RealtimeContext, user_id: str) -> set[str]:
    """Return the connected conversation partners of ``user_id``."""
    partners = await ctx.directory.partner_ids(user_id)
    return partners & ctx.gateway.online_user_ids()


async def _announce(ctx: RealtimeContext, user_id: str, event: str) -> None:
    data = {"userId": user_id, "timestamp": epoch_millis()}
    if ctx.settings.presence_scope == "broadcast":
        await ctx.gateway.broadcast(event, data, exclude_user=user_id)
        return
    try:
        targets = await audience(ctx, user_id)
    except ChatError as exc:
        logger.error("Could not resolve presence audience for %s: %s", user_id, exc.message)
        return
    targets.discard(user_id)
    await ctx.gateway.emit_to_users(targets, event, data)


async def on_join(ctx: RealtimeContext, conn: ClientConnection) -> None:
    """Mark the user online and announce it."""
    try:
        await ctx.ephemeral.set_online(conn.user_id, conn.connection_id)
    except ChatError as exc:
        logger.error("Error setting user online: %s", exc.message)
    await _announce(ctx, conn.user_id, "user_online")


async def on_disconnect(ctx: RealtimeContext, user_id: str) -> None:
    """Mark the user offline after their last connection closed, and announce it.

    A connection that opens while this runs keeps the user online: its own
    ``on_join`` announces it, and the offline write is undone.
    """
    if ctx.gateway.is_online(user_id):
        return
    try:
        await ctx.ephemeral.set_offline(user_id)
    except ChatError as exc:
        logger.error("Error setting user offline: %s", exc.message)
    connections = ctx.gateway.connections_for(user_id)
    if connections:
        logger.info("User %s reconnected while going offline", user_id)
        try:
            await ctx.ephemeral.set_online(user_id, connections[0].connection_id)
        except ChatError as exc:
            logger.error("Error restoring online status: %s", exc.message)
        return
    await _announce(ctx, user_id, "user_offline")


async def get_user_status(
    ctx: RealtimeContext, conn: ClientConnection, data: UserStatusData, ack: Acknowledgment
) -> None:
    status = await ctx.ephemeral.get_status(data.user_id)
    await ack(status=status.to_wire() if status else None)


async def get_users_status(
    ctx: RealtimeContext, conn: ClientConnection, data: UsersStatusData, ack: Acknowledgment
) -> None:
    statuses = await ctx.ephemeral.get_statuses(data.user_ids)
    await ack(statuses=[presence_payload(user_id, statuses.get(user_id)) for user_id in data.user_ids])


async def refresh_status(
    ctx: RealtimeContext, conn: ClientConnection, data: EmptyData, ack: Acknowledgment
) -> None:
    refreshed = await ctx.ephemeral.refresh(conn.user_id)
    await ack(refreshed=refreshed)


HANDLERS: dict[str, Handler] = {
    "get_user_status": get_user_status,
    "get_users_status": get_users_status,
    "refresh_status": refresh_status,
}
