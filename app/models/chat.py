"""Chat database model."""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class ChatStatus(enum.StrEnum):
    """Chat lifecycle. Closed is terminal for new messages."""

    ACTIVE = "active"
    CLOSED = "closed"


class Chat(Base):
    """Conversation owned by exactly one user."""

    __tablename__ = "chats"
    __table_args__ = (
        Index("ix_chats_user_id_last_message_at", "user_id", "last_message_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[ChatStatus] = mapped_column(
        Enum(
            ChatStatus,
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        default=ChatStatus.ACTIVE,
    )
    last_message_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def is_active(self) -> bool:
        return self.status == ChatStatus.ACTIVE
