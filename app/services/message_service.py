"""Message dispatch and message-level queries for the current user."""

from datetime import UTC, datetime

import structlog
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ChatClosedError,
    ChatNotFoundError,
    InputValidationError,
    MessageNotFoundError,
    UpstreamError,
)
from app.core.settings import ChatConfig, QueueConfig
from app.models.message import Message, SenderType
from app.repositories.chat_repo import ChatRepository
from app.repositories.message_repo import MessageRepository
from app.schemas.job_schema import ChatJob
from app.schemas.message_schema import (
    MessageListResponse,
    MessageResponse,
    SendMessageResponse,
)
from app.services.job_queue import JobQueue
from app.services.pagination import decode_id_cursor, encode_id_cursor

logger = structlog.get_logger()


class MessageService:
    """Accepts user messages and hands reply generation to the job queue.

    ``send`` only stores the user message and enqueues work; the bot reply
    is delivered later over the notification channel.
    """

    def __init__(
        self,
        session: AsyncSession,
        chat_repo: ChatRepository,
        message_repo: MessageRepository,
        job_queue: JobQueue,
        chat_config: ChatConfig,
        queue_config: QueueConfig,
        user_id: int,
    ) -> None:
        self._session = session
        self._chat_repo = chat_repo
        self._message_repo = message_repo
        self._job_queue = job_queue
        self._chat_config = chat_config
        self._queue_config = queue_config
        self._user_id = user_id

    async def send(self, chat_id: int, text: str) -> SendMessageResponse:
        """Persist the user's message, enqueue its reply job and acknowledge.

        Raises:
            InputValidationError: empty or over-long text.
            ChatNotFoundError: the chat does not exist or is not the user's.
            ChatClosedError: the chat no longer accepts messages.
            UpstreamError: the job could not be enqueued.
        """
        content = text.strip()
        if not content:
            raise InputValidationError("Message must not be blank")
        if len(content) > self._chat_config.max_message_length:
            raise InputValidationError(
                f"Message exceeds {self._chat_config.max_message_length} characters"
            )

        chat = await self._chat_repo.find_owned(chat_id, self._user_id)
        if chat is None:
            raise ChatNotFoundError()
        if not chat.is_active:
            raise ChatClosedError()

        message = await self._message_repo.create(chat_id, SenderType.USER, content)
        await self._chat_repo.touch_last_message_at(chat_id)
        await self._session.commit()
        user_message = MessageResponse.model_validate(message)

        job = ChatJob(
            user_id=self._user_id,
            chat_id=chat_id,
            message=content,
            correlation_id=user_message.id,
            max_attempts=self._queue_config.max_attempts,
            timeout_seconds=self._queue_config.job_timeout_seconds,
        )
        try:
            await self._job_queue.enqueue(job)
        except RedisError as exc:
            logger.error(
                "Failed to enqueue chat job",
                chat_id=chat_id,
                message_id=user_message.id,
                error=str(exc),
            )
            raise UpstreamError(
                "Message saved but reply generation could not be scheduled",
                code="QUEUE_UNAVAILABLE",
            ) from exc

        logger.info(
            "User message accepted",
            user_id=self._user_id,
            chat_id=chat_id,
            message_id=user_message.id,
            job_id=job.job_id,
        )
        return SendMessageResponse(
            user_message=user_message,
            chat_id=chat_id,
            job_id=job.job_id,
            timestamp=datetime.now(UTC),
        )

    async def search(
        self, query: str, limit: int = 20, cursor: str | None = None
    ) -> MessageListResponse:
        """Find the user's messages containing ``query``, newest first."""
        term = query.strip()
        if not term:
            raise InputValidationError("Search query must not be blank")
        before_id = decode_id_cursor(cursor) if cursor else None
        rows = await self._message_repo.search_by_content(
            self._user_id, term, limit + 1, before_id
        )
        return self._page(rows, limit)

    async def list_by_sender(
        self, sender_type: SenderType, limit: int = 20, cursor: str | None = None
    ) -> MessageListResponse:
        """List the user's messages written by one sender kind, newest first."""
        before_id = decode_id_cursor(cursor) if cursor else None
        rows = await self._message_repo.find_by_sender_type(
            self._user_id, sender_type, limit + 1, before_id
        )
        return self._page(rows, limit)

    async def soft_delete(self, message_id: int) -> None:
        """Hide a message from every read; it can be restored later."""
        message = await self._message_repo.find_owned(message_id, self._user_id)
        if message is None:
            raise MessageNotFoundError()
        await self._message_repo.soft_delete(message_id)
        logger.info("Message deleted", message_id=message_id, user_id=self._user_id)

    async def restore(self, message_id: int) -> MessageResponse:
        """Bring back a soft-deleted message."""
        message = await self._message_repo.find_owned(
            message_id, self._user_id, include_deleted=True
        )
        if message is None:
            raise MessageNotFoundError()
        if message.is_deleted:
            await self._message_repo.restore(message_id)
            await self._session.refresh(message)
            logger.info(
                "Message restored", message_id=message_id, user_id=self._user_id
            )
        return MessageResponse.model_validate(message)

    @staticmethod
    def _page(rows: list[Message], limit: int) -> MessageListResponse:
        has_next = len(rows) > limit
        page = rows[:limit]
        next_cursor = encode_id_cursor(page[-1].id) if has_next and page else None
        return MessageListResponse(
            messages=[MessageResponse.model_validate(m) for m in page],
            next_cursor=next_cursor,
            has_next=has_next,
        )
