# tests/conftest.py
from __future__ import annotations

import os
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path

import fakeredis
import pytest
import pytest_asyncio
from fastapi import FastAPI
from fastapi.testclient import TestClient

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-parley")
os.environ.setdefault("CHAT_ENCRYPTION_KEY", "test-chat-encryption-key")

from parley.core.security import create_access_token
from parley.core.settings import Settings
from parley.db.session import Base, Database, DocumentBase
from parley.main import create_app
from parley.repositories import ConversationRepository, MessageRepository
from parley.services.chat_service import ChatService
from parley.services.encryption import MessageCodec
from parley.services.ephemeral import EphemeralStore

TEST_SECRET_KEY = "test-secret-key-for-parley"
TEST_ENCRYPTION_KEY = "test-chat-encryption-key"


def _sqlite_url(path: Path) -> str:
    return f"sqlite+aiosqlite:///{path}"


@pytest.fixture()
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing both stores at throwaway SQLite files."""
    return Settings(
        SECRET_KEY=TEST_SECRET_KEY,
        CHAT_ENCRYPTION_KEY=TEST_ENCRYPTION_KEY,
        DATABASE_URL=_sqlite_url(tmp_path / "metadata.db"),
        DOCUMENT_DATABASE_URL=_sqlite_url(tmp_path / "documents.db"),
        AUTO_CREATE_TABLES=True,
        PRESENCE_SCOPE="contacts",
    )


@pytest_asyncio.fixture()
async def metadata_db(test_settings: Settings) -> AsyncIterator[Database]:
    database = Database(test_settings.database_url)
    await database.create_tables(Base.metadata)
    try:
        yield database
    finally:
        await database.dispose()


@pytest_asyncio.fixture()
async def document_db(test_settings: Settings) -> AsyncIterator[Database]:
    database = Database(test_settings.effective_document_database_url)
    await database.create_tables(DocumentBase.metadata)
    try:
        yield database
    finally:
        await database.dispose()


@pytest.fixture()
def conversation_repo(metadata_db: Database) -> ConversationRepository:
    return ConversationRepository(metadata_db)


@pytest.fixture()
def message_repo(metadata_db: Database, document_db: Database) -> MessageRepository:
    return MessageRepository(metadata_db, document_db)


@pytest.fixture()
def codec() -> MessageCodec:
    return MessageCodec(TEST_ENCRYPTION_KEY)


@pytest.fixture()
def chat_service(
    conversation_repo: ConversationRepository,
    message_repo: MessageRepository,
    codec: MessageCodec,
) -> ChatService:
    return ChatService(conversation_repo, message_repo, codec)


@pytest.fixture()
def fake_redis() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(decode_responses=True)


@pytest.fixture()
def ephemeral(fake_redis: fakeredis.FakeAsyncRedis) -> EphemeralStore:
    return EphemeralStore(fake_redis)


@pytest.fixture()
def app(test_settings: Settings, fake_redis: fakeredis.FakeAsyncRedis) -> FastAPI:
    return create_app(test_settings, redis_client=fake_redis)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def make_token(test_settings: Settings) -> Callable[[str], str]:
    """Return a helper that issues an access token for a user id."""

    def _make(user_id: str) -> str:
        return create_access_token(user_id, config=test_settings)

    return _make


@pytest.fixture()
def auth_headers(make_token: Callable[[str], str]) -> Callable[[str], dict[str, str]]:
    """Return a helper building bearer headers for a user id."""

    def _headers(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(user_id)}"}

    return _headers
