"""Command dispatch with request/acknowledgment semantics.

Each inbound frame is validated against the closed command union, routed to
its handler, and answered with exactly one acknowledgment when the client
supplied an ``ack`` id. A failing command becomes a failure acknowledgment;
the connection itself stays open.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from parley.core.errors import ChatError
from parley.core.security import TokenVerifier
from parley.core.settings import Settings
from parley.realtime.gateway import ClientConnection, RealtimeGateway
from parley.repositories.conversation_repo import ConversationRepository
from parley.schemas.realtime import AckId, Command, ack_frame, command_adapter, push_frame
from parley.services.chat_service import ChatService
from parley.services.ephemeral import EphemeralStore

logger = logging.getLogger(__name__)


@dataclass
class RealtimeContext:
    """Collaborators shared by every command handler."""

    gateway: RealtimeGateway
    chat: ChatService
    ephemeral: EphemeralStore
    directory: ConversationRepository
    verifier: TokenVerifier
    settings: Settings
    dispatcher: CommandDispatcher = field(init=False)

    def __post_init__(self) -> None:
        self.dispatcher = CommandDispatcher(self)


class Acknowledgment:
    """Callback a handler invokes once with its success/failure envelope."""

    def __init__(self, connection: ClientConnection, ack_id: AckId) -> None:
        self.connection = connection
        self.ack_id = ack_id
        self.sent = False

    async def __call__(self, success: bool = True, **fields: Any) -> None:
        if self.sent:
            raise RuntimeError("acknowledgment already sent")
        self.sent = True
        if self.ack_id is None:
            return
        await self.connection.send_json(ack_frame(self.ack_id, success, **fields))

    async def fail(self, error: str) -> None:
        await self(False, error=error)


Handler = Callable[[RealtimeContext, ClientConnection, Any, Acknowledgment], Awaitable[None]]


def _describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "data")
        parts.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "Invalid payload"


class CommandDispatcher:
    """Routes validated commands to handlers registered by event name."""

    def __init__(self, context: RealtimeContext) -> None:
        self.context = context
        self._handlers: dict[str, Handler] = {}

    def register(self, event: str, handler: Handler) -> None:
        if event in self._handlers:
            raise ValueError(f"Handler already registered for {event}")
        self._handlers[event] = handler

    def register_all(self, handlers: dict[str, Handler]) -> None:
        for event, handler in handlers.items():
            self.register(event, handler)

    async def dispatch(self, connection: ClientConnection, raw: Any) -> None:
        """Validate and run one inbound frame to completion."""
        ack_id = raw.get("ack") if isinstance(raw, dict) else None
        if not isinstance(ack_id, (int, str)):
            ack_id = None
        ack = Acknowledgment(connection, ack_id)

        try:
            command: Command = command_adapter.validate_python(raw)
        except PydanticValidationError as exc:
            message = _describe_validation_error(exc)
            logger.warning("Rejected frame from %s: %s", connection.user_id, message)
            if ack_id is None:
                await connection.send_json(push_frame("error", {"error": message}))
            else:
                await ack.fail(message)
            return

        handler = self._handlers.get(command.event)
        if handler is None:
            await ack.fail(f"Unsupported event: {command.event}")
            return

        try:
            await handler(self.context, connection, command.data, ack)
        except ChatError as exc:
            logger.error("Error handling %s for %s: %s", command.event, connection.user_id, exc.message)
            if not ack.sent:
                await ack.fail(exc.message)
        except PydanticValidationError as exc:
            message = _describe_validation_error(exc)
            if not ack.sent:
                await ack.fail(message)
        except Exception:
            logger.exception("Unexpected error handling %s for %s", command.event, connection.user_id)
            if not ack.sent:
                await ack.fail(f"Failed to handle {command.event}")
        else:
            if not ack.sent:
                await ack()
