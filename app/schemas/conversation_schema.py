"""Completion API payload schemas."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

from app.models.message import Message, SenderType

TurnRole = Literal["system", "user", "assistant"]


class ConversationTurn(BaseModel):
    """One (role, content) entry sent to the completion API. Never persisted."""

    model_config = ConfigDict(frozen=True)

    role: TurnRole
    content: str

    @classmethod
    def from_message(cls, message: Message) -> "ConversationTurn":
        """Map a persisted message onto the completion API roles."""
        role: TurnRole = (
            "user" if message.sender_type == SenderType.USER else "assistant"
        )
        return cls(role=role, content=message.content)
