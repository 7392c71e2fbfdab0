# src/parley/main.py
"""Main entry point for the Parley application."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as redis_asyncio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from parley.api.v1 import chat_router, media_router
from parley.core.errors import ChatError
from parley.core.security import JWTTokenVerifier, TokenVerifier
from parley.core.settings import Settings, settings
from parley.db.session import Base, Database, DocumentBase
from parley.realtime import RealtimeContext, RealtimeGateway
from parley.realtime.endpoint import router as realtime_router
from parley.realtime.handlers import HANDLERS
from parley.repositories import ConversationRepository, MessageRepository
from parley.services.chat_service import ChatService
from parley.services.encryption import MessageCodec
from parley.services.ephemeral import EphemeralStore
from parley.services.media import MediaUploader

logger = logging.getLogger(__name__)


def create_app(
    config: Settings | None = None,
    *,
    redis_client: Redis | None = None,
    media_uploader: MediaUploader | None = None,
    token_verifier: TokenVerifier | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Store and cache handles are opened in the lifespan and closed at shutdown.
    Collaborators passed in (Redis client, media uploader, token verifier) are
    used as-is and are not closed by the app.
    """
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logging.basicConfig(
            level=config.log_level.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        # Fails fast on a missing or default encryption key.
        codec = MessageCodec(config.chat_encryption_key, max_length=config.message_max_length)

        metadata_db = Database(config.database_url, echo=config.sql_debug)
        if config.effective_document_database_url == config.database_url:
            document_db = metadata_db
        else:
            document_db = Database(config.effective_document_database_url, echo=config.sql_debug)
        if config.auto_create_tables:
            await metadata_db.create_tables(Base.metadata)
            await document_db.create_tables(DocumentBase.metadata)

        owns_redis = redis_client is None
        redis = redis_client or redis_asyncio.from_url(config.redis_url, decode_responses=True)

        directory = ConversationRepository(metadata_db)
        store = MessageRepository(metadata_db, document_db)
        chat_service = ChatService(directory, store, codec)
        ephemeral = EphemeralStore(
            redis,
            presence_ttl=config.presence_ttl_seconds,
            typing_ttl=config.typing_ttl_seconds,
        )
        realtime = RealtimeContext(
            gateway=RealtimeGateway(),
            chat=chat_service,
            ephemeral=ephemeral,
            directory=directory,
            verifier=token_verifier or JWTTokenVerifier(config),
            settings=config,
        )
        realtime.dispatcher.register_all(HANDLERS)

        app.state.settings = config
        app.state.chat_service = chat_service
        app.state.realtime = realtime
        app.state.media_uploader = media_uploader
        logger.info("%s %s started", config.app_name, config.app_version)
        try:
            yield
        finally:
            if owns_redis:
                await redis.aclose()
            if document_db is not metadata_db:
                await document_db.dispose()
            await metadata_db.dispose()
            logger.info("%s stopped", config.app_name)

    app = FastAPI(
        title="Parley API",
        description="Direct-message chat with realtime delivery",
        version=config.app_version,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=config.cors_allow_methods,
        allow_headers=config.cors_allow_headers,
    )

    # Add GZip middleware for compression
    app.add_middleware(GZipMiddleware)

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # Include API routers
    app.include_router(chat_router, prefix="/api/v1")
    app.include_router(media_router, prefix="/api/v1")
    app.include_router(realtime_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {"status": "ok"}

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic information about the API."""
        return {
            "name": "Parley API",
            "version": config.app_version,
            "description": "Direct-message chat with realtime delivery",
            "docs": "/docs",
            "realtime": "/ws",
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("parley.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
