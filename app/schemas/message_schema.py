"""Message request and response schemas."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.message import SenderType


class SendMessageRequest(BaseModel):
    """User message posted to a chat."""

    content: str = Field(..., min_length=1, max_length=1000)

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Message must not be blank")
        return stripped


class MessageResponse(BaseModel):
    """Single persisted message."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    chat_id: int
    sender_type: SenderType
    content: str
    created_at: datetime


class SendMessageResponse(BaseModel):
    """Acknowledgment of a send; the bot reply arrives over the channel."""

    model_config = ConfigDict(frozen=True)

    user_message: MessageResponse
    chat_id: int
    job_id: str
    status: Literal["processing"] = "processing"
    timestamp: datetime


class MessageListResponse(BaseModel):
    """Page of messages matching a search or filter."""

    model_config = ConfigDict(frozen=True)

    messages: list[MessageResponse]
    next_cursor: str | None = None
    has_next: bool = False
