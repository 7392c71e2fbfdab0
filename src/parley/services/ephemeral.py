"""Presence and typing state with automatic expiry, backed by Redis.

Every record carries a TTL so a crashed process can never leave a user
"online" or "typing" forever.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from parley.core.errors import StorageError
from parley.db.time import epoch_millis

logger = logging.getLogger(__name__)

USER_STATUS_PREFIX = "user:status:"
TYPING_PREFIX = "typing:"
PRESENCE_TTL_SECONDS = 300
TYPING_TTL_SECONDS = 5

# Attempts at the optimistic refresh before giving up on a contended key.
_REFRESH_ATTEMPTS = 3


@dataclass
class PresenceStatus:
    """Presence record for one user."""

    online: bool
    last_seen: int
    connection_id: str

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase form stored in Redis and sent to clients."""
        return {
            "online": self.online,
            "lastSeen": self.last_seen,
            "connectionId": self.connection_id,
        }

    @classmethod
    def from_wire(cls, raw: str | bytes) -> PresenceStatus:
        data = json.loads(raw)
        return cls(
            online=bool(data.get("online")),
            last_seen=int(data.get("lastSeen", 0)),
            connection_id=str(data.get("connectionId", "")),
        )


def status_key(user_id: str) -> str:
    return f"{USER_STATUS_PREFIX}{user_id}"


def typing_key(conversation_id: str, user_id: str) -> str:
    return f"{TYPING_PREFIX}{conversation_id}:{user_id}"


class EphemeralStore:
    """Expiring key-value records for presence and typing indicators."""

    def __init__(
        self,
        redis: Redis,
        *,
        presence_ttl: int = PRESENCE_TTL_SECONDS,
        typing_ttl: int = TYPING_TTL_SECONDS,
    ) -> None:
        self.redis = redis
        self.presence_ttl = presence_ttl
        self.typing_ttl = typing_ttl

    # --- Presence -------------------------------------------------------------------
    async def set_online(self, user_id: str, connection_id: str) -> PresenceStatus:
        """Record the user as online on ``connection_id``."""
        status = PresenceStatus(online=True, last_seen=epoch_millis(), connection_id=connection_id)
        await self._write_status(user_id, status)
        logger.info("User %s is now online", user_id)
        return status

    async def set_offline(self, user_id: str) -> PresenceStatus:
        """Overwrite the user's record with an offline marker."""
        status = PresenceStatus(online=False, last_seen=epoch_millis(), connection_id="")
        await self._write_status(user_id, status)
        logger.info("User %s is now offline", user_id)
        return status

    async def get_status(self, user_id: str) -> PresenceStatus | None:
        """Return the user's presence record, or None when absent or expired."""
        try:
            raw = await self.redis.get(status_key(user_id))
        except RedisError as exc:
            logger.error("Error getting user status: %s", exc)
            raise StorageError("Failed to read presence") from exc
        if raw is None:
            return None
        try:
            return PresenceStatus.from_wire(raw)
        except (ValueError, TypeError) as exc:
            logger.warning("Discarding malformed presence record for %s: %s", user_id, exc)
            return None

    async def get_statuses(self, user_ids: list[str]) -> dict[str, PresenceStatus | None]:
        """Return presence records for several users in one round trip."""
        if not user_ids:
            return {}
        try:
            raws = await self.redis.mget([status_key(user_id) for user_id in user_ids])
        except RedisError as exc:
            logger.error("Error getting users status: %s", exc)
            raise StorageError("Failed to read presence") from exc
        statuses: dict[str, PresenceStatus | None] = {}
        for user_id, raw in zip(user_ids, raws):
            try:
                statuses[user_id] = PresenceStatus.from_wire(raw) if raw is not None else None
            except (ValueError, TypeError):
                statuses[user_id] = None
        return statuses

    async def refresh(self, user_id: str) -> bool:
        """Extend the TTL of an online record.

        An offline or missing record is left alone, so a late heartbeat can
        never resurrect a user that has already disconnected. The read and the
        rewrite happen under WATCH; a concurrent write aborts the rewrite.

        Returns:
            True if the record was refreshed.
        """
        key = status_key(user_id)
        try:
            for _ in range(_REFRESH_ATTEMPTS):
                async with self.redis.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            return False
                        status = PresenceStatus.from_wire(raw)
                        if not status.online:
                            return False
                        status.last_seen = epoch_millis()
                        pipe.multi()
                        pipe.setex(key, self.presence_ttl, json.dumps(status.to_wire()))
                        await pipe.execute()
                        return True
                    except WatchError:
                        continue
        except RedisError as exc:
            logger.error("Error refreshing user status: %s", exc)
            raise StorageError("Failed to refresh presence") from exc
        logger.debug("Gave up refreshing contended presence record for %s", user_id)
        return False

    async def _write_status(self, user_id: str, status: PresenceStatus) -> None:
        try:
            await self.redis.setex(
                status_key(user_id),
                self.presence_ttl,
                json.dumps(status.to_wire()),
            )
        except RedisError as exc:
            logger.error("Error writing status for %s: %s", user_id, exc)
            raise StorageError("Failed to write presence") from exc

    # --- Typing ---------------------------------------------------------------------
    async def start_typing(self, conversation_id: str, user_id: str) -> None:
        """Mark the user as typing; the marker expires on its own."""
        try:
            await self.redis.setex(typing_key(conversation_id, user_id), self.typing_ttl, "1")
        except RedisError as exc:
            logger.error("Error handling typing start: %s", exc)
            raise StorageError("Failed to record typing") from exc

    async def stop_typing(self, conversation_id: str, user_id: str) -> None:
        """Remove the typing marker."""
        try:
            await self.redis.delete(typing_key(conversation_id, user_id))
        except RedisError as exc:
            logger.error("Error handling typing stop: %s", exc)
            raise StorageError("Failed to clear typing") from exc

    async def is_typing(self, conversation_id: str, user_id: str) -> bool:
        """Return True while the user's typing marker exists."""
        try:
            return bool(await self.redis.exists(typing_key(conversation_id, user_id)))
        except RedisError as exc:
            logger.error("Error checking typing state: %s", exc)
            raise StorageError("Failed to read typing state") from exc


def presence_payload(user_id: str, status: PresenceStatus | None) -> dict[str, Any]:
    """Shape one user's presence for a client response."""
    return {"userId": user_id, "status": status.to_wire() if status else None}


__all__ = [
    "EphemeralStore",
    "PresenceStatus",
    "presence_payload",
    "status_key",
    "typing_key",
]
