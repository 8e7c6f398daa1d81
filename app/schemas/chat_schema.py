"""Chat request and response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict

from app.models.chat import ChatStatus
from app.schemas.message_schema import MessageResponse


class ChatResponse(BaseModel):
    """Single chat."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    user_id: int
    status: ChatStatus
    last_message_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ChatSummary(ChatResponse):
    """Chat entry in the list response, with the latest message preview."""

    last_message_preview: str | None = None


class ChatListResponse(BaseModel):
    """Paginated chat list with cursor metadata."""

    model_config = ConfigDict(frozen=True)

    chats: list[ChatSummary]
    next_cursor: str | None = None
    has_next: bool = False


class ChatHistoryResponse(BaseModel):
    """One page of a chat's messages, oldest first."""

    model_config = ConfigDict(frozen=True)

    chat_id: int
    messages: list[MessageResponse]
    next_cursor: str | None = None
    has_next: bool = False
