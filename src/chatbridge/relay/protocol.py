"""Real-time event envelopes and payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from chatbridge.storage.models import MessageRecord

UNREAD_MESSAGES = "unreadMessages"
CHAT_HISTORY = "chatHistory"
NEW_MESSAGE = "newMessage"
ERROR = "error"
SEND_MESSAGE = "sendMessage"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class WsInbound(BaseModel):
    """Client -> server frame."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class WsOutbound(BaseModel):
    """Server -> client frame."""

    event: str
    data: Any = None


class SendMessagePayload(_CamelModel):
    chat_id: str = Field(alias="chatId", min_length=1)
    message: str = Field(min_length=1)


class MessagePayload(_CamelModel):
    id: int | None = None
    chat_id: str = Field(alias="chatId")
    sender_id: str = Field(alias="senderId")
    sender_type: str = Field(alias="senderType")
    content: str
    is_read: bool = Field(alias="isRead")
    timestamp: datetime

    @classmethod
    def from_record(cls, record: MessageRecord) -> MessagePayload:
        return cls(
            id=record.id,
            chat_id=record.chat_id,
            sender_id=record.sender_id,
            sender_type=str(record.sender_type),
            content=record.content,
            is_read=record.is_read,
            timestamp=record.timestamp,
        )


class NewMessageEvent(_CamelModel):
    chat_id: str = Field(alias="chatId")
    message: str
    sender_id: str = Field(alias="senderId")
    sender_type: str = Field(alias="senderType")
    timestamp: datetime

    @classmethod
    def from_record(cls, record: MessageRecord) -> NewMessageEvent:
        return cls(
            chat_id=record.chat_id,
            message=record.content,
            sender_id=record.sender_id,
            sender_type=str(record.sender_type),
            timestamp=record.timestamp,
        )


def dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def dump_messages(records: list[MessageRecord]) -> list[dict[str, Any]]:
    return [dump(MessagePayload.from_record(r)) for r in records]
