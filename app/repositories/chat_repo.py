"""Chat repository for chat lifecycle database operations."""

from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.chat import Chat, ChatStatus
from app.models.message import Message


@dataclass(frozen=True)
class ChatWithPreview:
    """Immutable result object for chat list queries."""

    id: int
    user_id: int
    status: ChatStatus
    last_message_at: datetime | None
    last_message_preview: str | None
    created_at: datetime
    updated_at: datetime


class ChatRepository:
    """Encapsulates chat database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, chat_id: int) -> Chat | None:
        """Find a chat by primary key."""
        result = await self._session.execute(select(Chat).where(Chat.id == chat_id))
        return result.scalar_one_or_none()

    async def find_owned(self, chat_id: int, user_id: int) -> Chat | None:
        """Find a chat only if it belongs to the given user."""
        result = await self._session.execute(
            select(Chat).where(Chat.id == chat_id, Chat.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def exists_for_user(self, chat_id: int, user_id: int) -> bool:
        """Check ownership without loading the row."""
        result = await self._session.execute(
            select(Chat.id).where(Chat.id == chat_id, Chat.user_id == user_id)
        )
        return result.scalar_one_or_none() is not None

    async def create(self, user_id: int) -> Chat:
        """Create a new active chat."""
        chat = Chat(user_id=user_id, status=ChatStatus.ACTIVE)
        self._session.add(chat)
        await self._session.flush()
        await self._session.refresh(chat)
        return chat

    async def refresh(self, chat: Chat) -> Chat:
        """Reload a chat after a bulk update touched its row."""
        await self._session.refresh(chat)
        return chat

    async def touch_last_message_at(self, chat_id: int) -> None:
        """Bump the chat's last message activity timestamp."""
        await self._session.execute(
            update(Chat)
            .where(Chat.id == chat_id)
            .values(last_message_at=datetime.now(UTC))
        )

    async def update_status(self, chat_id: int, status: ChatStatus) -> None:
        """Set the lifecycle status of a chat."""
        await self._session.execute(
            update(Chat).where(Chat.id == chat_id).values(status=status)
        )

    async def delete_with_messages(self, chat_id: int) -> None:
        """Hard-delete a chat and every message in it, soft-deleted ones included."""
        await self._session.execute(delete(Message).where(Message.chat_id == chat_id))
        await self._session.execute(delete(Chat).where(Chat.id == chat_id))

    async def find_chats_by_user(
        self,
        user_id: int,
        limit: int,
        cursor_activity_at: datetime | None = None,
        cursor_id: int | None = None,
    ) -> list[ChatWithPreview]:
        """Fetch user chats with keyset pagination (activity DESC, id DESC).

        Activity is ``last_message_at`` falling back to ``created_at`` for
        chats without messages. Returns ``limit`` rows; the caller should
        request ``limit + 1`` to detect whether a next page exists.
        """
        activity = func.coalesce(Chat.last_message_at, Chat.created_at)

        preview_subq = (
            select(Message.content)
            .where(
                and_(
                    Message.chat_id == Chat.id,
                    Message.deleted_at.is_(None),
                )
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
            .correlate(Chat)
            .scalar_subquery()
        )

        stmt = select(
            Chat.id,
            Chat.user_id,
            Chat.status,
            Chat.last_message_at,
            preview_subq.label("last_message_preview"),
            Chat.created_at,
            Chat.updated_at,
        ).where(Chat.user_id == user_id)

        if cursor_activity_at is not None and cursor_id is not None:
            stmt = stmt.where(
                or_(
                    activity < cursor_activity_at,
                    and_(activity == cursor_activity_at, Chat.id < cursor_id),
                )
            )

        stmt = stmt.order_by(activity.desc(), Chat.id.desc()).limit(limit)

        result = await self._session.execute(stmt)
        return [
            ChatWithPreview(
                id=row.id,
                user_id=row.user_id,
                status=row.status,
                last_message_at=row.last_message_at,
                last_message_preview=row.last_message_preview,
                created_at=row.created_at,
                updated_at=row.updated_at,
            )
            for row in result
        ]
