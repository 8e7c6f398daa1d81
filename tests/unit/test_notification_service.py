"""Unit tests for the notification channel."""

import fakeredis.aioredis
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError
from app.models.message import SenderType
from app.repositories.chat_repo import ChatRepository
from app.schemas.event_schema import (
    ErrorOccurredEvent,
    ResponseReadyEvent,
    notification_event_adapter,
)
from app.schemas.message_schema import MessageResponse
from app.services.notification_service import NotificationChannel, channel_name
from tests.conftest import create_chat, create_message, create_user


@pytest.fixture
def channel(fake_redis: fakeredis.aioredis.FakeRedis) -> NotificationChannel:
    return NotificationChannel(fake_redis)


@pytest.fixture
def chat_repo(db_session: AsyncSession) -> ChatRepository:
    return ChatRepository(db_session)


@pytest.fixture
async def chat_id(db_session: AsyncSession) -> int:
    await create_user(db_session, user_id=1)
    await create_user(db_session, user_id=2)
    chat = await create_chat(db_session, user_id=1)
    return chat.id


def test_channel_name_is_private_per_user_and_chat() -> None:
    assert channel_name(5, 9) == "private-user.5.chat.9"


def test_event_shapes_round_trip_by_type() -> None:
    error = notification_event_adapter.validate_json(
        ErrorOccurredEvent(chat_id=1, error="boom").model_dump_json()
    )
    assert isinstance(error, ErrorOccurredEvent)
    assert error.type == "bot_error"


class TestAuthorization:
    async def test_owner_is_allowed(
        self, channel: NotificationChannel, chat_repo: ChatRepository, chat_id: int
    ) -> None:
        await channel.authorize(1, 1, chat_id, chat_repo)

    async def test_other_principal_is_rejected(
        self, channel: NotificationChannel, chat_repo: ChatRepository, chat_id: int
    ) -> None:
        with pytest.raises(AuthorizationError):
            await channel.authorize(2, 1, chat_id, chat_repo)

    async def test_chat_of_another_user_is_rejected(
        self, channel: NotificationChannel, chat_repo: ChatRepository, chat_id: int
    ) -> None:
        with pytest.raises(AuthorizationError):
            await channel.authorize(2, 2, chat_id, chat_repo)

    async def test_missing_chat_is_rejected(
        self, channel: NotificationChannel, chat_repo: ChatRepository, chat_id: int
    ) -> None:
        with pytest.raises(AuthorizationError):
            await channel.subscribe(1, 1, chat_id + 100, chat_repo)


class TestPublishSubscribe:
    async def test_subscriber_receives_both_event_kinds(
        self,
        channel: NotificationChannel,
        chat_repo: ChatRepository,
        db_session: AsyncSession,
        chat_id: int,
    ) -> None:
        bot = await create_message(db_session, chat_id, "Sunny", SenderType.BOT)
        ready = ResponseReadyEvent(
            chat_id=chat_id, message=MessageResponse.model_validate(bot)
        )
        failed = ErrorOccurredEvent(chat_id=chat_id, error="Please try again.")

        async with await channel.subscribe(1, 1, chat_id, chat_repo) as subscription:
            assert await channel.publish(1, chat_id, ready) == 1
            await channel.publish(1, chat_id, failed)

            first = await subscription.get(timeout=2)
            second = await subscription.get(timeout=2)

        assert isinstance(first, ResponseReadyEvent)
        assert first.message.content == "Sunny"
        assert isinstance(second, ErrorOccurredEvent)
        assert second.error == "Please try again."

    async def test_events_are_scoped_to_one_chat(
        self,
        channel: NotificationChannel,
        chat_repo: ChatRepository,
        chat_id: int,
    ) -> None:
        async with await channel.subscribe(1, 1, chat_id, chat_repo) as subscription:
            await channel.publish(
                1, chat_id + 1, ErrorOccurredEvent(chat_id=chat_id + 1, error="x")
            )
            assert await subscription.get(timeout=0.2) is None

    async def test_no_replay_for_late_subscribers(
        self,
        channel: NotificationChannel,
        chat_repo: ChatRepository,
        chat_id: int,
    ) -> None:
        receivers = await channel.publish(
            1, chat_id, ErrorOccurredEvent(chat_id=chat_id, error="early")
        )
        assert receivers == 0

        async with await channel.subscribe(1, 1, chat_id, chat_repo) as subscription:
            assert await subscription.get(timeout=0.2) is None
