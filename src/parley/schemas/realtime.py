"""Realtime protocol frames.

Every client command is a closed variant selected by its ``event`` tag. A frame
that does not match one of the variants is rejected at the boundary, before any
handler runs.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from parley.schemas.chat import CamelModel, MessageFields

AckId = Union[int, str, None]


class PageData(CamelModel):
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


class FetchMessagesData(CamelModel):
    conversation_id: str = Field(..., min_length=1)
    page: int = Field(1, ge=1)
    limit: int = Field(50, ge=1, le=100)


class MessageDeliveredData(CamelModel):
    message_id: str | None = None


class MessagesReadData(CamelModel):
    message_ids: list[str]


class DeleteMessageData(CamelModel):
    message_id: str = Field(..., min_length=1)


class UnreadCountData(CamelModel):
    conversation_id: str | None = None


class TypingData(CamelModel):
    conversation_id: str = Field(..., min_length=1)
    receiver_id: str = Field(..., min_length=1)


class CheckTypingData(CamelModel):
    conversation_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)


class UserStatusData(CamelModel):
    user_id: str = Field(..., min_length=1)


class UsersStatusData(CamelModel):
    user_ids: list[str]


class EmptyData(CamelModel):
    pass


class _Command(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ack: AckId = None


class SendMessageCommand(_Command):
    event: Literal["send_message"]
    data: MessageFields


class MessageDeliveredCommand(_Command):
    event: Literal["message_delivered"]
    data: MessageDeliveredData = Field(default_factory=MessageDeliveredData)


class MessagesReadCommand(_Command):
    event: Literal["messages_read"]
    data: MessagesReadData


class FetchMessagesCommand(_Command):
    event: Literal["fetch_messages"]
    data: FetchMessagesData


class FetchConversationsCommand(_Command):
    event: Literal["fetch_conversations"]
    data: PageData = Field(default_factory=PageData)


class DeleteMessageCommand(_Command):
    event: Literal["delete_message"]
    data: DeleteMessageData


class GetUnreadCountCommand(_Command):
    event: Literal["get_unread_count"]
    data: UnreadCountData = Field(default_factory=UnreadCountData)


class TypingStartCommand(_Command):
    event: Literal["typing_start"]
    data: TypingData


class TypingStopCommand(_Command):
    event: Literal["typing_stop"]
    data: TypingData


class CheckTypingCommand(_Command):
    event: Literal["check_typing"]
    data: CheckTypingData


class GetUserStatusCommand(_Command):
    event: Literal["get_user_status"]
    data: UserStatusData


class GetUsersStatusCommand(_Command):
    event: Literal["get_users_status"]
    data: UsersStatusData


class RefreshStatusCommand(_Command):
    event: Literal["refresh_status"]
    data: EmptyData = Field(default_factory=EmptyData)


Command = Annotated[
    Union[
        SendMessageCommand,
        MessageDeliveredCommand,
        MessagesReadCommand,
        FetchMessagesCommand,
        FetchConversationsCommand,
        DeleteMessageCommand,
        GetUnreadCountCommand,
        TypingStartCommand,
        TypingStopCommand,
        CheckTypingCommand,
        GetUserStatusCommand,
        GetUsersStatusCommand,
        RefreshStatusCommand,
    ],
    Field(discriminator="event"),
]

command_adapter: TypeAdapter[Command] = TypeAdapter(Command)

# Server -> client push events.
PUSH_EVENTS = frozenset(
    (
        "new_message",
        "message_delivered",
        "messages_read",
        "user_typing",
        "user_stopped_typing",
        "user_online",
        "user_offline",
        "error",
    )
)


def ack_frame(ack: AckId, success: bool, **fields: Any) -> dict[str, Any]:
    """Build the acknowledgment frame for one command."""
    return {"event": "ack", "ack": ack, "success": success, **fields}


def push_frame(event: str, data: dict[str, Any]) -> dict[str, Any]:
    """Build a server push frame."""
    if event not in PUSH_EVENTS:
        raise ValueError(f"Unknown push event: {event}")
    return {"event": event, "data": data}
