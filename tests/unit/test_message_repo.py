"""Unit tests for MessageRepository."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.message import SenderType
from app.repositories.message_repo import MessageRepository
from tests.conftest import create_chat, create_message, create_user


@pytest.fixture
def message_repo(db_session: AsyncSession) -> MessageRepository:
    """Create a MessageRepository backed by the test DB session."""
    return MessageRepository(db_session)


@pytest.fixture
async def chat_id(db_session: AsyncSession) -> int:
    await create_user(db_session, user_id=1)
    chat = await create_chat(db_session, user_id=1)
    return chat.id


class TestCreate:
    async def test_create_sets_sender_and_timestamp(
        self, message_repo: MessageRepository, chat_id: int
    ) -> None:
        message = await message_repo.create(chat_id, SenderType.BOT, "Hi there")

        assert message.id is not None
        assert message.sender_type == SenderType.BOT
        assert message.content == "Hi there"
        assert message.created_at is not None
        assert not message.is_deleted


class TestOrderedReads:
    """History windows are ordered by creation time, then id."""

    async def test_recent_window_is_oldest_first(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        for i in range(5):
            await create_message(db_session, chat_id, f"m{i}")

        window = await message_repo.find_recent_by_chat(chat_id, limit=3)

        assert [m.content for m in window] == ["m2", "m3", "m4"]

    async def test_recent_window_before_id(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        messages = [
            await create_message(db_session, chat_id, f"m{i}") for i in range(4)
        ]

        window = await message_repo.find_recent_by_chat(
            chat_id, limit=10, before_id=messages[3].id
        )

        assert [m.content for m in window] == ["m0", "m1", "m2"]

    async def test_find_by_chat_pages_backwards(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        for i in range(5):
            await create_message(db_session, chat_id, f"m{i}")

        first = await message_repo.find_by_chat(chat_id, limit=2)
        second = await message_repo.find_by_chat(
            chat_id, limit=2, before_id=first[-1].id
        )

        assert [m.content for m in first] == ["m4", "m3"]
        assert [m.content for m in second] == ["m2", "m1"]

    async def test_count_by_chat(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        await create_message(db_session, chat_id, "a")
        b = await create_message(db_session, chat_id, "b")
        await message_repo.soft_delete(b.id)

        assert await message_repo.count_by_chat(chat_id) == 1


class TestSoftDelete:
    async def test_soft_deleted_hidden_then_restored(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        message = await create_message(db_session, chat_id, "oops")

        await message_repo.soft_delete(message.id)

        assert await message_repo.find_by_id(message.id) is None
        assert await message_repo.find_by_id(message.id, include_deleted=True)
        assert await message_repo.find_recent_by_chat(chat_id, limit=10) == []

        await message_repo.restore(message.id)

        restored = await message_repo.find_by_id(message.id)
        assert restored is not None
        assert restored.deleted_at is None


class TestOwnerScopedQueries:
    """Search and filters only see the caller's chats."""

    async def test_search_is_case_insensitive_and_owner_scoped(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        await create_user(db_session, user_id=2)
        foreign_chat = await create_chat(db_session, user_id=2)
        await create_message(db_session, chat_id, "Weather in MADRID?")
        await create_message(db_session, chat_id, "Hello")
        await create_message(db_session, foreign_chat.id, "madrid too")

        results = await message_repo.search_by_content(1, "madrid", limit=10)

        assert [m.content for m in results] == ["Weather in MADRID?"]

    async def test_search_escapes_wildcards(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        await create_message(db_session, chat_id, "100% sure")
        await create_message(db_session, chat_id, "100 percent")

        results = await message_repo.search_by_content(1, "100%", limit=10)

        assert [m.content for m in results] == ["100% sure"]

    async def test_find_by_sender_type(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        await create_message(db_session, chat_id, "question")
        await create_message(db_session, chat_id, "answer", SenderType.BOT)

        bots = await message_repo.find_by_sender_type(1, SenderType.BOT, limit=10)

        assert [m.content for m in bots] == ["answer"]

    async def test_find_owned(
        self,
        message_repo: MessageRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        message = await create_message(db_session, chat_id, "mine")

        assert await message_repo.find_owned(message.id, 1) is not None
        assert await message_repo.find_owned(message.id, 2) is None
