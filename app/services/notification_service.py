"""Per-(user, chat) real-time notification channel over Redis pub/sub.

Delivery is best-effort and at-most-once: an event reaches whichever
subscribers are connected when it is published. There is no replay log;
a client that connects late falls back to reading the chat history.
"""

import asyncio
from types import TracebackType

import redis.asyncio as redis
import structlog
from pydantic import ValidationError
from redis.asyncio.client import PubSub

from app.core.exceptions import AuthorizationError
from app.repositories.chat_repo import ChatRepository
from app.schemas.event_schema import NotificationEvent, notification_event_adapter

logger = structlog.get_logger()

CHANNEL_TEMPLATE = "private-user.{user_id}.chat.{chat_id}"


def channel_name(user_id: int, chat_id: int) -> str:
    """Private channel scope for one user's chat."""
    return CHANNEL_TEMPLATE.format(user_id=user_id, chat_id=chat_id)


class Subscription:
    """An open subscription yielding events until closed."""

    def __init__(self, pubsub: PubSub, channel: str) -> None:
        self._pubsub = pubsub
        self.channel = channel
        self._closed = False

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> NotificationEvent:
        while not self._closed:
            event = await self.get(timeout=1.0)
            if event is not None:
                return event
        raise StopAsyncIteration

    async def get(self, timeout: float) -> NotificationEvent | None:
        """Wait up to ``timeout`` seconds for the next event."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not self._closed:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return None
            message = await self._pubsub.get_message(
                ignore_subscribe_messages=True, timeout=remaining
            )
            if message is None or message.get("type") != "message":
                continue
            try:
                return notification_event_adapter.validate_json(message["data"])
            except ValidationError:
                logger.warning("Dropping malformed notification", channel=self.channel)
        return None

    async def aclose(self) -> None:
        """Unsubscribe and release the connection."""
        if self._closed:
            return
        self._closed = True
        await self._pubsub.unsubscribe(self.channel)
        await self._pubsub.aclose()


class NotificationChannel:
    """Publishes chat events and hands out authorized subscriptions."""

    def __init__(self, redis_client: redis.Redis) -> None:  # type: ignore[type-arg]
        self._redis = redis_client

    async def publish(
        self, user_id: int, chat_id: int, event: NotificationEvent
    ) -> int:
        """Broadcast an event; returns the number of subscribers reached."""
        channel = channel_name(user_id, chat_id)
        receivers = await self._redis.publish(channel, event.model_dump_json())
        logger.info(
            "Notification published",
            channel=channel,
            event_type=event.type,
            receivers=receivers,
        )
        return int(receivers)

    async def authorize(
        self,
        principal_id: int,
        user_id: int,
        chat_id: int,
        chat_repo: ChatRepository,
    ) -> None:
        """Allow only the chat's owner to listen on its channel."""
        if principal_id != user_id or not await chat_repo.exists_for_user(
            chat_id, user_id
        ):
            logger.info(
                "Channel access denied",
                principal_id=principal_id,
                user_id=user_id,
                chat_id=chat_id,
            )
            raise AuthorizationError(message="Not authorized to listen on this chat")

    async def subscribe(
        self,
        principal_id: int,
        user_id: int,
        chat_id: int,
        chat_repo: ChatRepository,
    ) -> Subscription:
        """Authorize, then subscribe immediately so no later event is missed."""
        await self.authorize(principal_id, user_id, chat_id, chat_repo)
        channel = channel_name(user_id, chat_id)
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)
        logger.info("Channel subscribed", channel=channel)
        return Subscription(pubsub, channel)
