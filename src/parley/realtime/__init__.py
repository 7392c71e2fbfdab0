"""Realtime WebSocket gateway for chat delivery, presence, and typing."""

from .dispatch import Acknowledgment, CommandDispatcher, RealtimeContext
from .gateway import ClientConnection, ConnectionState, RealtimeGateway

__all__ = [
    "Acknowledgment",
    "ClientConnection",
    "CommandDispatcher",
    "ConnectionState",
    "RealtimeContext",
    "RealtimeGateway",
]
