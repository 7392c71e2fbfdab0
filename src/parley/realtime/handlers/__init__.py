"""Command handlers, keyed by event name."""

from __future__ import annotations

from parley.realtime.dispatch import Handler

from . import chat, presence, typing

HANDLERS: dict[str, Handler] = {
    **chat.HANDLERS,
    **presence.HANDLERS,
    **typing.HANDLERS,
}

__all__ = ["HANDLERS", "chat", "presence", "typing"]
