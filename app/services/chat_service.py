"""Chat lifecycle and history reads for the current user."""

import structlog

from app.core.exceptions import ChatNotFoundError
from app.models.chat import Chat, ChatStatus
from app.repositories.chat_repo import ChatRepository
from app.repositories.message_repo import MessageRepository
from app.repositories.user_repo import UserRepository
from app.schemas.chat_schema import (
    ChatHistoryResponse,
    ChatListResponse,
    ChatResponse,
    ChatSummary,
)
from app.schemas.message_schema import MessageResponse
from app.services.pagination import (
    decode_cursor,
    decode_id_cursor,
    encode_cursor,
    encode_id_cursor,
)

logger = structlog.get_logger()


class ChatService:
    """Orchestrates chat queries and lifecycle changes with cursor pagination."""

    def __init__(
        self,
        chat_repo: ChatRepository,
        message_repo: MessageRepository,
        user_repo: UserRepository,
        user_id: int,
        email: str | None = None,
    ) -> None:
        self._chat_repo = chat_repo
        self._message_repo = message_repo
        self._user_repo = user_repo
        self._user_id = user_id
        self._email = email

    async def create(self) -> ChatResponse:
        """Open a new active chat."""
        await self._user_repo.get_or_create(self._user_id, self._email)
        chat = await self._chat_repo.create(self._user_id)
        logger.info("Chat created", chat_id=chat.id, user_id=self._user_id)
        return ChatResponse.model_validate(chat)

    async def get(self, chat_id: int) -> ChatResponse:
        return ChatResponse.model_validate(await self._owned(chat_id))

    async def list_chats(
        self,
        limit: int = 20,
        cursor: str | None = None,
    ) -> ChatListResponse:
        """Return a page of the user's chats, most recently active first."""
        cursor_activity_at = None
        cursor_id = None
        if cursor is not None:
            cursor_activity_at, cursor_id = decode_cursor(cursor)

        rows = await self._chat_repo.find_chats_by_user(
            user_id=self._user_id,
            limit=limit + 1,
            cursor_activity_at=cursor_activity_at,
            cursor_id=cursor_id,
        )

        has_next = len(rows) > limit
        page_rows = rows[:limit]

        next_cursor: str | None = None
        if has_next and page_rows:
            last = page_rows[-1]
            next_cursor = encode_cursor(
                last.last_message_at or last.created_at, last.id
            )

        chats = [
            ChatSummary(
                id=r.id,
                user_id=r.user_id,
                status=r.status,
                last_message_at=r.last_message_at,
                last_message_preview=r.last_message_preview,
                created_at=r.created_at,
                updated_at=r.updated_at,
            )
            for r in page_rows
        ]
        return ChatListResponse(chats=chats, next_cursor=next_cursor, has_next=has_next)

    async def history(
        self,
        chat_id: int,
        limit: int = 50,
        cursor: str | None = None,
    ) -> ChatHistoryResponse:
        """Return a page of a chat's messages, oldest first.

        The first page holds the latest messages; ``next_cursor`` walks
        further back in time.
        """
        await self._owned(chat_id)
        before_id = decode_id_cursor(cursor) if cursor else None
        rows = await self._message_repo.find_by_chat(chat_id, limit + 1, before_id)

        has_next = len(rows) > limit
        page_rows = rows[:limit]
        next_cursor = (
            encode_id_cursor(page_rows[-1].id) if has_next and page_rows else None
        )
        return ChatHistoryResponse(
            chat_id=chat_id,
            messages=[MessageResponse.model_validate(m) for m in reversed(page_rows)],
            next_cursor=next_cursor,
            has_next=has_next,
        )

    async def close(self, chat_id: int) -> ChatResponse:
        """Stop accepting new messages; the chat stays readable."""
        chat = await self._owned(chat_id)
        if chat.status != ChatStatus.CLOSED:
            await self._chat_repo.update_status(chat_id, ChatStatus.CLOSED)
            chat = await self._chat_repo.refresh(chat)
            logger.info("Chat closed", chat_id=chat_id, user_id=self._user_id)
        return ChatResponse.model_validate(chat)

    async def delete(self, chat_id: int) -> None:
        """Remove the chat and all of its messages."""
        await self._owned(chat_id)
        await self._chat_repo.delete_with_messages(chat_id)
        logger.info("Chat deleted", chat_id=chat_id, user_id=self._user_id)

    async def _owned(self, chat_id: int) -> Chat:
        chat = await self._chat_repo.find_owned(chat_id, self._user_id)
        if chat is None:
            raise ChatNotFoundError()
        return chat
