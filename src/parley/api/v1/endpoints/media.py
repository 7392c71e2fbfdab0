"""Chat media upload endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, File, Form, UploadFile, status

from parley.api.v1.dependencies import ChatServiceDep, CurrentUserDep, MediaUploaderDep
from parley.core.errors import NotFound, Unauthorized
from parley.models.message import MessageType
from parley.schemas.chat import MediaUploadResponse

router = APIRouter(prefix="/chat", tags=["chat-media"])

DEFAULT_MIME_TYPE = "application/octet-stream"


@router.post("/media", status_code=status.HTTP_201_CREATED, response_model=MediaUploadResponse)
async def upload_media(
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
    uploader: MediaUploaderDep,
    file: Annotated[UploadFile, File()],
    receiver_id: Annotated[str, Form(alias="receiverId", min_length=1)],
    kind: Annotated[MessageType, Form()],
    conversation_id: Annotated[str | None, Form(alias="conversationId")] = None,
) -> MediaUploadResponse:
    """Store an attachment and return the media fields for ``send_message``."""
    uploader.check_size(kind, file.size)
    if conversation_id is None:
        conversation = await chat.directory.resolve_or_create(current_user, receiver_id)
    else:
        conversation = await chat.directory.get(conversation_id)
        if conversation is None:
            raise NotFound("Conversation not found")
        if not conversation.has_participant(current_user):
            raise Unauthorized("Not a participant of this conversation")

    limit = uploader.limits.get(kind.value)
    # Never read more than one byte past the limit.
    data = await file.read(limit + 1) if limit is not None else await file.read()
    uploader.check_size(kind, len(data))
    uploaded = await uploader.upload(
        data,
        file_name=file.filename or "upload",
        mime_type=file.content_type or DEFAULT_MIME_TYPE,
        owner_id=current_user,
        conversation_id=conversation.id,
        kind=kind,
    )
    return MediaUploadResponse(
        message_type=uploaded.message_type,
        media_url=uploaded.media_url,
        media_type=uploaded.media_type,
        media_size=uploaded.media_size,
        file_name=uploaded.file_name,
        thumbnail_url=uploaded.thumbnail_url,
        width=uploaded.width,
        height=uploaded.height,
    )
