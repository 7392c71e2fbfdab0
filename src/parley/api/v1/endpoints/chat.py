# src/parley/api/v1/endpoints/chat.py
"""Direct chat endpoints for the Parley API."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, status

from parley.api.v1.dependencies import ChatServiceDep, CurrentUserDep, GatewayDep
from parley.db.time import utcnow
from parley.schemas.chat import (
    ChatMessage,
    ConversationPage,
    MarkReadRequest,
    MessagePage,
    SendMessageParams,
    SendMessageRequest,
    SuccessResponse,
    UnreadCountResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


@router.post(
    "/messages",
    status_code=status.HTTP_201_CREATED,
    response_model=ChatMessage,
)
async def send_message(
    body: SendMessageRequest,
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
    gateway: GatewayDep,
) -> ChatMessage:
    """Send a message and push it to the receiver's live connections."""
    params = SendMessageParams(sender_id=current_user, **body.model_dump())
    message = await chat.send(params)
    await gateway.emit_to_user(message.receiver_id, "new_message", message.to_wire())
    return message


@router.get("/conversations", response_model=ConversationPage)
async def list_conversations(
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> ConversationPage:
    """List the caller's conversations, most recently active first."""
    conversations, total = await chat.conversations(current_user, page, limit)
    return ConversationPage(conversations=conversations, total=total)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=MessagePage,
)
async def list_messages(
    conversation_id: str,
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
) -> MessagePage:
    """Return one page of a conversation's history, newest first."""
    messages, total = await chat.history(
        conversation_id, page, limit, requester_id=current_user
    )
    return MessagePage(messages=messages, total=total)


@router.post("/messages/read", response_model=SuccessResponse)
async def mark_messages_read(
    body: MarkReadRequest,
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
    gateway: GatewayDep,
) -> SuccessResponse:
    by_sender = await chat.mark_read(body.message_ids, current_user)
    read_at = utcnow().isoformat()
    for sender_id, message_ids in by_sender.items():
        await gateway.emit_to_user(
            sender_id,
            "messages_read",
            {"messageIds": message_ids, "readAt": read_at, "readBy": current_user},
        )
    return SuccessResponse()


@router.delete("/messages/{message_id}", response_model=SuccessResponse)
async def delete_message(
    message_id: str,
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
) -> SuccessResponse:
    """Soft-delete a message the caller sent."""
    await chat.delete(message_id, current_user)
    return SuccessResponse()


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
    conversation_id: str | None = Query(None, alias="conversationId"),
) -> UnreadCountResponse:
    count = await chat.unread_count(current_user, conversation_id)
    return UnreadCountResponse(unread_count=count)


@router.post("/conversations/{conversation_id}/block", response_model=SuccessResponse)
async def block_conversation(
    conversation_id: str,
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
) -> SuccessResponse:
    await chat.block(conversation_id, current_user)
    logger.info("Conversation %s blocked by %s", conversation_id, current_user)
    return SuccessResponse()


@router.post("/conversations/{conversation_id}/unblock", response_model=SuccessResponse)
async def unblock_conversation(
    conversation_id: str,
    current_user: CurrentUserDep,
    chat: ChatServiceDep,
) -> SuccessResponse:
    await chat.unblock(conversation_id)
    logger.info("Conversation %s unblocked by %s", conversation_id, current_user)
    return SuccessResponse()
