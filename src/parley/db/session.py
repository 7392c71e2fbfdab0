"""Database session configuration.

Parley keeps message state in two stores: a relational store for conversations
and delivery metadata (``Base``) and a document store for message payloads
(``DocumentBase``). Each store is reached through its own ``Database`` handle,
created and disposed by the process entry point.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import MetaData
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for the relational (metadata) store."""


class DocumentBase(DeclarativeBase):
    """Declarative base for the document (payload) store."""


class Database:
    """Async engine plus session factory for one store."""

    def __init__(self, url: str, *, echo: bool = False, **engine_kwargs: Any) -> None:
        if url.startswith("sqlite"):
            engine_kwargs.setdefault("connect_args", {"timeout": 15})
        else:
            engine_kwargs.setdefault("pool_pre_ping", True)
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_kwargs)
        self.sessionmaker = async_sessionmaker(
            self.engine,
            autoflush=False,
            expire_on_commit=False,
        )

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a session that is closed when the block exits."""
        async with self.sessionmaker() as session:
            yield session

    async def create_tables(self, metadata: MetaData) -> None:
        """Create all tables registered on ``metadata``."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def drop_tables(self, metadata: MetaData) -> None:
        """Drop all tables registered on ``metadata``."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.drop_all)

    async def dispose(self) -> None:
        """Close every pooled connection."""
        await self.engine.dispose()


# Ensure model modules are imported so that metadata is populated when create_tables runs.
import parley.models  # noqa: E402,F401
