"""Chat behaviour configuration."""

from pydantic import BaseModel


class ChatConfig(BaseModel, frozen=True):
    """Chat history and message limits."""

    history_limit: int
    max_message_length: int
    send_rate_limit: str
