"""Connection registry and fan-out.

All live connections of one user join a group keyed by that user's id, so a
single ``emit_to_user`` call reaches every open session of the user.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import uuid
from collections import defaultdict
from collections.abc import Iterable
from typing import Any, Protocol

from parley.schemas.realtime import push_frame

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    """Lifecycle of one client connection."""

    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    JOINED = "joined"
    ACTIVE = "active"
    DISCONNECTED = "disconnected"


class JSONSocket(Protocol):
    """The part of a WebSocket the gateway writes to."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...


class ClientConnection:
    """One authenticated (or authenticating) client socket."""

    def __init__(self, socket: JSONSocket, connection_id: str | None = None) -> None:
        self.socket = socket
        self.connection_id = connection_id or uuid.uuid4().hex
        self.user_id: str | None = None
        self.state = ConnectionState.CONNECTING
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return (
            f"ClientConnection(id={self.connection_id!r}, user={self.user_id!r}, "
            f"state={self.state.value})"
        )

    async def send_json(self, frame: dict[str, Any]) -> bool:
        """Write one frame; returns False if the socket is gone."""
        if self.state is ConnectionState.DISCONNECTED:
            return False
        async with self._send_lock:
            try:
                await self.socket.send_json(frame)
            except Exception as exc:  # closed mid-send; the receive loop tears down
                logger.debug("Dropping frame for %s: %s", self.connection_id, exc)
                return False
        return True


class RealtimeGateway:
    """Tracks which connections belong to which user."""

    def __init__(self) -> None:
        self._groups: dict[str, set[ClientConnection]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def join(self, connection: ClientConnection, user_id: str) -> None:
        """Add an authenticated connection to the user's group."""
        async with self._lock:
            connection.user_id = user_id
            self._groups[user_id].add(connection)
            connection.state = ConnectionState.JOINED
        logger.info("User %s joined their personal room (%s)", user_id, connection.connection_id)

    async def leave(self, connection: ClientConnection) -> bool:
        """Remove a connection.

        Returns:
            True when it was the user's last open connection.
        """
        connection.state = ConnectionState.DISCONNECTED
        user_id = connection.user_id
        if user_id is None:
            return False
        async with self._lock:
            group = self._groups.get(user_id)
            if group is None:
                return False
            group.discard(connection)
            if group:
                return False
            del self._groups[user_id]
        return True

    def is_online(self, user_id: str) -> bool:
        return bool(self._groups.get(user_id))

    def online_user_ids(self) -> set[str]:
        return {user_id for user_id, group in self._groups.items() if group}

    def connections_for(self, user_id: str) -> list[ClientConnection]:
        return list(self._groups.get(user_id, ()))

    async def emit_to_user(self, user_id: str, event: str, data: dict[str, Any]) -> int:
        """Push an event to every connection of ``user_id``.

        Returns:
            Number of connections the frame was written to.
        """
        frame = push_frame(event, data)
        delivered = 0
        for connection in self.connections_for(user_id):
            if await connection.send_json(frame):
                delivered += 1
        return delivered

    async def emit_to_users(self, user_ids: Iterable[str], event: str, data: dict[str, Any]) -> int:
        delivered = 0
        for user_id in set(user_ids):
            delivered += await self.emit_to_user(user_id, event, data)
        return delivered

    async def broadcast(
        self,
        event: str,
        data: dict[str, Any],
        *,
        exclude_user: str | None = None,
    ) -> int:
        """Push an event to every connected user except ``exclude_user``."""
        targets = self.online_user_ids()
        targets.discard(exclude_user)
        return await self.emit_to_users(targets, event, data)
