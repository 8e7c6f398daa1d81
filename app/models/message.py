"""Message database model."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class SenderType(enum.StrEnum):
    """Who authored a message. Immutable after creation."""

    USER = "user"
    BOT = "bot"


class Message(Base):
    """Single message within a chat."""

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_chat_id_created_at_id", "chat_id", "created_at", "id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    chat_id: Mapped[int] = mapped_column(
        ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_type: Mapped[SenderType] = mapped_column(
        Enum(
            SenderType,
            native_enum=False,
            length=10,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
