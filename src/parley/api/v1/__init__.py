# src/parley/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import chat_router, media_router

__all__ = [
    "chat_router",
    "media_router",
]
