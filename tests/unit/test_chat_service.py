"""Unit tests for ChatService."""

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AppException, ChatNotFoundError
from app.models.chat import Chat, ChatStatus
from app.models.message import Message, SenderType
from app.repositories.chat_repo import ChatRepository
from app.repositories.message_repo import MessageRepository
from app.repositories.user_repo import UserRepository
from app.services.chat_service import ChatService
from tests.conftest import create_chat, create_message, create_user


def _service(session: AsyncSession, user_id: int = 1) -> ChatService:
    return ChatService(
        chat_repo=ChatRepository(session),
        message_repo=MessageRepository(session),
        user_repo=UserRepository(session),
        user_id=user_id,
        email=f"user{user_id}@test.com",
    )


@pytest.fixture
def service(db_session: AsyncSession) -> ChatService:
    return _service(db_session)


class TestCreate:
    async def test_creates_active_chat_and_mirrors_user(
        self, service: ChatService, db_session: AsyncSession
    ) -> None:
        chat = await service.create()

        assert chat.user_id == 1
        assert chat.status == ChatStatus.ACTIVE
        assert chat.last_message_at is None
        user = await UserRepository(db_session).find_by_id(1)
        assert user is not None
        assert user.email == "user1@test.com"

    async def test_second_chat_reuses_user(
        self, service: ChatService
    ) -> None:
        first = await service.create()
        second = await service.create()

        assert first.id != second.id
        assert first.user_id == second.user_id == 1


class TestRead:
    async def test_get_foreign_chat_is_not_found(
        self, db_session: AsyncSession
    ) -> None:
        await create_user(db_session, user_id=2)
        chat = await create_chat(db_session, user_id=2)

        with pytest.raises(ChatNotFoundError):
            await _service(db_session, user_id=1).get(chat.id)

    async def test_list_pages_by_activity(
        self, service: ChatService, db_session: AsyncSession
    ) -> None:
        await create_user(db_session, user_id=1)
        base = datetime(2026, 1, 1, tzinfo=UTC)
        ids = []
        for hours in (1, 3, 2):
            chat = Chat(
                user_id=1,
                status=ChatStatus.ACTIVE,
                last_message_at=base + timedelta(hours=hours),
            )
            db_session.add(chat)
            await db_session.flush()
            ids.append(chat.id)

        first = await service.list_chats(limit=2)
        second = await service.list_chats(limit=2, cursor=first.next_cursor)

        assert [c.id for c in first.chats] == [ids[1], ids[2]]
        assert first.has_next
        assert [c.id for c in second.chats] == [ids[0]]
        assert not second.has_next
        assert second.next_cursor is None

    async def test_list_rejects_garbage_cursor(self, service: ChatService) -> None:
        with pytest.raises(AppException) as exc_info:
            await service.list_chats(cursor="bm90LWEtY3Vyc29y")
        assert exc_info.value.code == "INVALID_CURSOR"

    async def test_history_is_oldest_first_and_pages_backwards(
        self, service: ChatService, db_session: AsyncSession
    ) -> None:
        await create_user(db_session, user_id=1)
        chat = await create_chat(db_session)
        for i in range(5):
            sender = SenderType.USER if i % 2 == 0 else SenderType.BOT
            await create_message(db_session, chat.id, f"m{i}", sender)

        latest = await service.history(chat.id, limit=3)
        older = await service.history(chat.id, limit=3, cursor=latest.next_cursor)

        assert [m.content for m in latest.messages] == ["m2", "m3", "m4"]
        assert latest.has_next
        assert [m.content for m in older.messages] == ["m0", "m1"]
        assert not older.has_next

    async def test_history_hides_deleted_messages(
        self, service: ChatService, db_session: AsyncSession
    ) -> None:
        await create_user(db_session, user_id=1)
        chat = await create_chat(db_session)
        kept = await create_message(db_session, chat.id, "kept")
        gone = await create_message(db_session, chat.id, "gone")
        await MessageRepository(db_session).soft_delete(gone.id)

        history = await service.history(chat.id)

        assert [m.id for m in history.messages] == [kept.id]


class TestLifecycle:
    async def test_close_keeps_chat_readable(
        self, service: ChatService, db_session: AsyncSession
    ) -> None:
        await create_user(db_session, user_id=1)
        chat = await create_chat(db_session)

        closed = await service.close(chat.id)

        assert closed.status == ChatStatus.CLOSED
        assert (await service.get(chat.id)).status == ChatStatus.CLOSED

    async def test_close_is_idempotent(
        self, service: ChatService, db_session: AsyncSession
    ) -> None:
        await create_user(db_session, user_id=1)
        chat = await create_chat(db_session, status=ChatStatus.CLOSED)

        assert (await service.close(chat.id)).status == ChatStatus.CLOSED

    async def test_delete_removes_messages(
        self, service: ChatService, db_session: AsyncSession
    ) -> None:
        await create_user(db_session, user_id=1)
        chat = await create_chat(db_session)
        await create_message(db_session, chat.id, "bye")

        await service.delete(chat.id)

        remaining = await db_session.execute(
            select(func.count(Message.id)).where(Message.chat_id == chat.id)
        )
        assert remaining.scalar_one() == 0
        with pytest.raises(ChatNotFoundError):
            await service.get(chat.id)

    async def test_delete_foreign_chat_is_not_found(
        self, db_session: AsyncSession
    ) -> None:
        await create_user(db_session, user_id=2)
        chat = await create_chat(db_session, user_id=2)

        with pytest.raises(ChatNotFoundError):
            await _service(db_session, user_id=1).delete(chat.id)
