"""Real-time notification events.

Exactly two shapes are ever published on a chat channel.
"""

from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from app.schemas.message_schema import MessageResponse


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ResponseReadyEvent(BaseModel):
    """The bot reply was persisted and is ready to display."""

    model_config = ConfigDict(frozen=True)

    type: Literal["bot_response"] = "bot_response"
    chat_id: int
    message: MessageResponse
    timestamp: datetime = Field(default_factory=_utcnow)


class ErrorOccurredEvent(BaseModel):
    """Processing of the last user message failed."""

    model_config = ConfigDict(frozen=True)

    type: Literal["bot_error"] = "bot_error"
    chat_id: int
    error: str
    timestamp: datetime = Field(default_factory=_utcnow)


NotificationEvent = Annotated[
    ResponseReadyEvent | ErrorOccurredEvent, Field(discriminator="type")
]

notification_event_adapter: TypeAdapter[NotificationEvent] = TypeAdapter(
    NotificationEvent
)
