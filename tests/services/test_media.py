# tests/services/test_media.py
"""Tests for the chat media upload pipeline."""

from unittest.mock import AsyncMock

import pytest

from parley.core.errors import ValidationError
from parley.models import MessageType
from parley.services.media import MediaUploader, ProcessedMedia, build_media_key

LIMITS = {"image": 1024, "video": 4096, "file": 2048}


@pytest.fixture
def storage():
    storage = AsyncMock()
    storage.upload.side_effect = lambda data, *, key, mime_type: f"https://cdn.test/{key}"
    return storage


@pytest.fixture
def processor():
    processor = AsyncMock()
    processor.process.return_value = ProcessedMedia(
        data=b"compressed",
        mime_type="image/jpeg",
        width=640,
        height=480,
        thumbnail=b"thumb",
    )
    return processor


def test_media_key_layout():
    key = build_media_key("alice", "conv-1", "image", "my photo (1).png", now=1700000000.5)
    assert key == "chat-media/alice/conv-1/image/1700000000500-my_photo__1_.png"


def test_media_key_for_blank_name():
    key = build_media_key("alice", "conv-1", "file", "", now=1.0)
    assert key.endswith("/1000-upload")


class TestMediaUploader:
    @pytest.mark.asyncio
    async def test_image_is_processed_and_thumbnailed(self, storage, processor):
        uploader = MediaUploader(storage, processor, LIMITS)

        uploaded = await uploader.upload(
            b"raw-image",
            file_name="cat.png",
            mime_type="image/png",
            owner_id="alice",
            conversation_id="conv-1",
            kind=MessageType.IMAGE,
        )

        processor.process.assert_awaited_once_with(b"raw-image", MessageType.IMAGE, "image/png")
        assert uploaded.message_type is MessageType.IMAGE
        assert uploaded.media_type == "image/jpeg"
        assert uploaded.media_size == len(b"compressed")
        assert uploaded.width == 640
        assert "/image/" in uploaded.media_url
        assert uploaded.thumbnail_url is not None
        assert "/thumbnail/" in uploaded.thumbnail_url
        assert storage.upload.await_count == 2

    @pytest.mark.asyncio
    async def test_files_skip_processing(self, storage, processor):
        uploader = MediaUploader(storage, processor, LIMITS)

        uploaded = await uploader.upload(
            b"%PDF-1.7",
            file_name="report.pdf",
            mime_type="application/pdf",
            owner_id="alice",
            conversation_id="conv-1",
            kind=MessageType.FILE,
        )

        processor.process.assert_not_awaited()
        assert uploaded.media_type == "application/pdf"
        assert uploaded.thumbnail_url is None
        assert uploaded.file_name == "report.pdf"

    @pytest.mark.asyncio
    async def test_oversize_upload_is_rejected(self, storage, processor):
        uploader = MediaUploader(storage, processor, LIMITS)

        with pytest.raises(ValidationError):
            await uploader.upload(
                b"x" * 1025,
                file_name="big.png",
                mime_type="image/png",
                owner_id="alice",
                conversation_id="conv-1",
                kind=MessageType.IMAGE,
            )
        storage.upload.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("data", "kind"), [(b"", MessageType.FILE), (b"hi", MessageType.TEXT)])
    async def test_empty_or_text_uploads_are_rejected(self, storage, data, kind):
        uploader = MediaUploader(storage, None, LIMITS)

        with pytest.raises(ValidationError):
            await uploader.upload(
                data,
                file_name="x",
                mime_type="text/plain",
                owner_id="alice",
                conversation_id="conv-1",
                kind=kind,
            )


@pytest.mark.parametrize(
    ("kind", "size", "rejected"),
    [
        (MessageType.IMAGE, 1024, False),
        (MessageType.IMAGE, 1025, True),
        (MessageType.FILE, None, False),
    ],
)
def test_check_size(storage, kind, size, rejected):
    uploader = MediaUploader(storage, None, LIMITS)
    if rejected:
        with pytest.raises(ValidationError, match="image exceeds maximum size of 1024 bytes"):
            uploader.check_size(kind, size)
    else:
        uploader.check_size(kind, size)
