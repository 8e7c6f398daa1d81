"""Message repository for message persistence and ordered reads."""

from datetime import UTC, datetime

from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from app.models.chat import Chat
from app.models.message import Message, SenderType


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class MessageRepository:
    """Encapsulates message database queries.

    Soft-deleted messages are excluded from every read except
    ``find_by_id(..., include_deleted=True)``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self, chat_id: int, sender_type: SenderType, content: str
    ) -> Message:
        """Create a single message."""
        message = Message(chat_id=chat_id, sender_type=sender_type, content=content)
        self._session.add(message)
        await self._session.flush()
        await self._session.refresh(message)
        return message

    async def find_by_id(
        self, message_id: int, include_deleted: bool = False
    ) -> Message | None:
        """Find a message by primary key."""
        stmt = select(Message).where(Message.id == message_id)
        if not include_deleted:
            stmt = stmt.where(Message.deleted_at.is_(None))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_owned(
        self, message_id: int, user_id: int, include_deleted: bool = False
    ) -> Message | None:
        """Find a message only if its chat belongs to the given user."""
        stmt = (
            select(Message)
            .join(Chat, Chat.id == Message.chat_id)
            .where(Message.id == message_id, Chat.user_id == user_id)
        )
        if not include_deleted:
            stmt = stmt.where(Message.deleted_at.is_(None))
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_recent_by_chat(
        self, chat_id: int, limit: int, before_id: int | None = None
    ) -> list[Message]:
        """Return the last ``limit`` messages of a chat, oldest first.

        ``before_id`` restricts the window to messages older than that id.
        """
        stmt = select(Message).where(
            Message.chat_id == chat_id, Message.deleted_at.is_(None)
        )
        if before_id is not None:
            stmt = stmt.where(Message.id < before_id)
        result = await self._session.execute(
            stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def find_by_chat(
        self,
        chat_id: int,
        limit: int,
        before_id: int | None = None,
    ) -> list[Message]:
        """Page backwards through a chat's history (newest first).

        Returns ``limit`` rows. The caller should request ``limit + 1`` to
        detect whether an older page exists.
        """
        stmt = select(Message).where(
            Message.chat_id == chat_id, Message.deleted_at.is_(None)
        )
        if before_id is not None:
            stmt = stmt.where(Message.id < before_id)
        stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_by_chat(self, chat_id: int) -> int:
        """Count visible messages in a chat."""
        result = await self._session.execute(
            select(func.count(Message.id)).where(
                Message.chat_id == chat_id, Message.deleted_at.is_(None)
            )
        )
        return int(result.scalar_one())

    async def search_by_content(
        self,
        user_id: int,
        query: str,
        limit: int,
        before_id: int | None = None,
    ) -> list[Message]:
        """Case-insensitive substring search over the user's messages."""
        pattern = f"%{_escape_like(query)}%"
        stmt = self._owned_query(user_id, before_id).where(
            Message.content.ilike(pattern, escape="\\")
        )
        result = await self._session.execute(stmt.limit(limit))
        return list(result.scalars().all())

    async def find_by_sender_type(
        self,
        user_id: int,
        sender_type: SenderType,
        limit: int,
        before_id: int | None = None,
    ) -> list[Message]:
        """List the user's messages authored by one sender kind."""
        stmt = self._owned_query(user_id, before_id).where(
            Message.sender_type == sender_type
        )
        result = await self._session.execute(stmt.limit(limit))
        return list(result.scalars().all())

    async def soft_delete(self, message_id: int) -> None:
        """Logically remove a message; it stays recoverable."""
        await self._session.execute(
            update(Message)
            .where(Message.id == message_id)
            .values(deleted_at=datetime.now(UTC))
        )

    async def restore(self, message_id: int) -> None:
        """Undo a soft delete."""
        await self._session.execute(
            update(Message).where(Message.id == message_id).values(deleted_at=None)
        )

    @staticmethod
    def _owned_query(user_id: int, before_id: int | None) -> Select[tuple[Message]]:
        stmt = (
            select(Message)
            .join(Chat, Chat.id == Message.chat_id)
            .where(and_(Chat.user_id == user_id, Message.deleted_at.is_(None)))
        )
        if before_id is not None:
            stmt = stmt.where(Message.id < before_id)
        return stmt.order_by(Message.id.desc())
