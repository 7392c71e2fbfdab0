"""Chat media upload: interfaces to the storage and processing collaborators.

Object storage and image/video processing live outside this service. They are
reached through the ``MediaStorage`` and ``MediaProcessor`` protocols and
wired in by the process entry point.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from typing import Literal, Protocol

from parley.core.errors import ValidationError
from parley.models.message import MessageType

logger = logging.getLogger(__name__)

MediaKind = Literal["image", "video", "file", "thumbnail"]

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


@dataclass
class ProcessedMedia:
    """Output of the processing collaborator."""

    data: bytes
    mime_type: str
    width: int | None = None
    height: int | None = None
    thumbnail: bytes | None = None


@dataclass
class UploadedMedia:
    """Media fields ready to attach to a non-text message."""

    message_type: MessageType
    media_url: str
    media_type: str
    media_size: int
    file_name: str
    thumbnail_url: str | None = None
    width: int | None = None
    height: int | None = None


class MediaStorage(Protocol):
    """Object storage: bytes plus metadata in, public URL out."""

    async def upload(
        self,
        data: bytes,
        *,
        key: str,
        mime_type: str,
    ) -> str:
        """Store ``data`` under ``key`` and return its public URL."""


class MediaProcessor(Protocol):
    """Media validation and compression.

    Implementations raise ``ValidationError`` for input they refuse.
    """

    async def process(self, data: bytes, kind: MessageType, mime_type: str) -> ProcessedMedia:
        """Return processed bytes (and dimensions where meaningful)."""


def build_media_key(
    owner_id: str,
    conversation_id: str,
    kind: MediaKind,
    file_name: str,
    *,
    now: float | None = None,
) -> str:
    """Return the storage key ``chat-media/{owner}/{conversation}/{kind}/{ms}-{name}``."""
    timestamp = int((now if now is not None else time.time()) * 1000)
    safe_name = _UNSAFE_FILENAME_CHARS.sub("_", file_name) or "upload"
    return f"chat-media/{owner_id}/{conversation_id}/{kind}/{timestamp}-{safe_name}"


class MediaUploader:
    """Validates, processes, and stores one chat attachment."""

    def __init__(
        self,
        storage: MediaStorage,
        processor: MediaProcessor | None,
        limits: dict[str, int],
    ) -> None:
        self.storage = storage
        self.processor = processor
        self.limits = limits

    def check_size(self, kind: MessageType, size: int | None) -> None:
        """Reject a payload of ``size`` bytes that exceeds the limit for ``kind``."""
        limit = self.limits.get(kind.value)
        if limit is not None and size is not None and size > limit:
            raise ValidationError(f"{kind.value} exceeds maximum size of {limit} bytes")

    async def upload(
        self,
        data: bytes,
        *,
        file_name: str,
        mime_type: str,
        owner_id: str,
        conversation_id: str,
        kind: MessageType,
    ) -> UploadedMedia:
        """Turn raw upload bytes into the media fields of a message.

        Raises:
            ValidationError: For text kinds, empty uploads, oversize uploads, or
                input the processor rejects.
        """
        if kind is MessageType.TEXT:
            raise ValidationError("Text is not an uploadable media kind")
        if not data:
            raise ValidationError("Uploaded file is empty")
        self.check_size(kind, len(data))

        processed = ProcessedMedia(data=data, mime_type=mime_type)
        if self.processor is not None and kind in (MessageType.IMAGE, MessageType.VIDEO):
            processed = await self.processor.process(data, kind, mime_type)

        key = build_media_key(owner_id, conversation_id, kind.value, file_name)
        url = await self.storage.upload(processed.data, key=key, mime_type=processed.mime_type)

        thumbnail_url: str | None = None
        if processed.thumbnail:
            thumb_key = build_media_key(owner_id, conversation_id, "thumbnail", f"thumb_{file_name}")
            thumbnail_url = await self.storage.upload(
                processed.thumbnail, key=thumb_key, mime_type="image/jpeg"
            )

        logger.info("Chat media uploaded: %s", url)
        return UploadedMedia(
            message_type=kind,
            media_url=url,
            media_type=processed.mime_type,
            media_size=len(processed.data),
            file_name=file_name,
            thumbnail_url=thumbnail_url,
            width=processed.width,
            height=processed.height,
        )
