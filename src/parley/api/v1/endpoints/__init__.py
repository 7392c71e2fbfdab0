"""API endpoint routers."""

from .chat import router as chat_router
from .media import router as media_router

__all__ = ["chat_router", "media_router"]
