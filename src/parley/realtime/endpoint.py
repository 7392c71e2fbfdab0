"""WebSocket entry point for the realtime gateway."""

from __future__ import annotations

import json
import logging

import anyio
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from parley.core.errors import AuthenticationError
from parley.core.security import strip_bearer
from parley.realtime.dispatch import RealtimeContext
from parley.realtime.gateway import ClientConnection, ConnectionState
from parley.realtime.handlers import presence
from parley.schemas.realtime import push_frame

logger = logging.getLogger(__name__)

AUTH_FAILED_CLOSE_CODE = 4401

router = APIRouter()


def _authenticate(ctx: RealtimeContext, websocket: WebSocket) -> str:
    token = websocket.query_params.get("token") or strip_bearer(
        websocket.headers.get("authorization")
    )
    if not token:
        raise AuthenticationError("Authentication error: No token provided")
    return ctx.verifier.verify(token)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket) -> None:
    """Authenticate, join the user's group, then process commands one at a time."""
    ctx: RealtimeContext = websocket.app.state.realtime
    connection = ClientConnection(websocket)
    connection.state = ConnectionState.AUTHENTICATING

    try:
        user_id = _authenticate(ctx, websocket)
    except AuthenticationError as exc:
        logger.warning("Rejected realtime connection: %s", exc.message)
        connection.state = ConnectionState.DISCONNECTED
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE, reason=exc.message)
        return

    await websocket.accept()
    await ctx.gateway.join(connection, user_id)
    logger.info("User connected: %s", user_id)

    try:
        await presence.on_join(ctx, connection)
        connection.state = ConnectionState.ACTIVE

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            try:
                frame = json.loads(raw)
            except (json.JSONDecodeError, UnicodeDecodeError):
                await connection.send_json(push_frame("error", {"error": "Malformed JSON frame"}))
                continue
            await ctx.dispatcher.dispatch(connection, frame)
    except WebSocketDisconnect as exc:
        logger.info("User disconnected: %s (code %s)", user_id, exc.code)
    finally:
        # Runs to completion even when the socket task is being cancelled.
        with anyio.CancelScope(shield=True):
            last = await ctx.gateway.leave(connection)
            if last:
                await presence.on_disconnect(ctx, user_id)


__all__ = ["AUTH_FAILED_CLOSE_CODE", "router"]
