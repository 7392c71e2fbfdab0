"""Application settings and configuration.

This module defines all configuration options for the Parley application.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Encryption key shipped in sample env files; never valid for a running process.
DEFAULT_ENCRYPTION_KEY = "default-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Parley", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Message body encryption
    chat_encryption_key: str | None = Field(default=None, alias="CHAT_ENCRYPTION_KEY")
    message_max_length: int = Field(default=5000, alias="MESSAGE_MAX_LENGTH")

    # Relational store (conversations, message metadata)
    database_url: str = Field(
        default="postgresql+asyncpg://localhost/parley",
        alias="DATABASE_URL",
    )
    # Document store (message payloads); shares DATABASE_URL when unset
    document_database_url: str | None = Field(default=None, alias="DOCUMENT_DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    auto_create_tables: bool = Field(default=False, alias="AUTO_CREATE_TABLES")

    # Redis configuration for presence and typing state
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    presence_ttl_seconds: int = Field(default=300, alias="PRESENCE_TTL_SECONDS")
    typing_ttl_seconds: int = Field(default=5, alias="TYPING_TTL_SECONDS")
    presence_scope: Literal["contacts", "broadcast"] = Field(
        default="contacts",
        alias="PRESENCE_SCOPE",
    )

    # Dual-store reconciliation
    reconcile_grace_seconds: int = Field(default=600, alias="RECONCILE_GRACE_SECONDS")

    # Media limits (bytes)
    media_max_image_bytes: int = Field(default=5 * 1024 * 1024, alias="MEDIA_MAX_IMAGE_BYTES")
    media_max_video_bytes: int = Field(default=50 * 1024 * 1024, alias="MEDIA_MAX_VIDEO_BYTES")
    media_max_file_bytes: int = Field(default=25 * 1024 * 1024, alias="MEDIA_MAX_FILE_BYTES")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        populate_by_name=True,
        extra="ignore",
    )

    @property
    def effective_document_database_url(self) -> str:
        """Return the document store URL, falling back to the relational store.

        Returns:
            Database URL used for message payload documents
        """
        return self.document_database_url or self.database_url

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic.

        Returns:
            Database URL compatible with synchronous database drivers
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        if url.startswith("sqlite+aiosqlite"):
            return url.replace("sqlite+aiosqlite", "sqlite", 1)
        return url

    @property
    def media_limits(self) -> dict[str, int]:
        """Return per-kind upload size limits as a convenience dictionary."""
        return {
            "image": self.media_max_image_bytes,
            "video": self.media_max_video_bytes,
            "file": self.media_max_file_bytes,
        }


settings = Settings()  # type: ignore[call-arg]
