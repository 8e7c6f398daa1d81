"""Deferred bot-reply generation for one persisted user message."""

import asyncio
from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import async_session_factory
from app.core.exceptions import ChatNotFoundError, JobTimeoutError, UserNotFoundError
from app.models.message import SenderType
from app.repositories.chat_repo import ChatRepository
from app.repositories.message_repo import MessageRepository
from app.repositories.user_repo import UserRepository
from app.schemas.conversation_schema import ConversationTurn
from app.schemas.event_schema import (
    ErrorOccurredEvent,
    NotificationEvent,
    ResponseReadyEvent,
)
from app.schemas.job_schema import ChatJob
from app.schemas.message_schema import MessageResponse
from app.services.conversation_engine import ConversationEngine
from app.services.notification_service import NotificationChannel

logger = structlog.get_logger()

ATTEMPT_FAILED_MESSAGE = (
    "The assistant could not reply (attempt {attempt} of {max_attempts})."
)
TERMINAL_FAILURE_MESSAGE = (
    "An unexpected error occurred while generating the reply. Please try again."
)


class ProcessChatMessageJob:
    """Runs one attempt of a chat job and reports its outcome on the channel.

    Each attempt opens its own short transactions: one to read the chat
    history and one to store the bot reply. No session is held open while
    the completion API or the weather provider is being called.
    """

    def __init__(
        self,
        engine: ConversationEngine,
        notifications: NotificationChannel,
        session_factory: Callable[[], AsyncSession] = async_session_factory,
        history_limit: int = 10,
    ) -> None:
        self._engine = engine
        self._notifications = notifications
        self._session_factory = session_factory
        self._history_limit = history_limit

    async def execute(
        self, user_id: int, chat_id: int, raw_message: str, correlation_id: int
    ) -> MessageResponse:
        """Generate, store and announce the bot reply to ``correlation_id``."""
        log = logger.bind(
            user_id=user_id, chat_id=chat_id, message_id=correlation_id
        )
        log.info("Processing chat message")

        async with self._session_factory() as session:
            if await UserRepository(session).find_by_id(user_id) is None:
                raise UserNotFoundError()
            chat = await ChatRepository(session).find_owned(chat_id, user_id)
            if chat is None:
                raise ChatNotFoundError()
            recent = await MessageRepository(session).find_recent_by_chat(
                chat_id, self._history_limit, before_id=correlation_id
            )
            history = [ConversationTurn.from_message(m) for m in recent]

        reply = await self._engine.converse(raw_message, history)

        async with self._session_factory() as session:
            bot_message = await MessageRepository(session).create(
                chat_id, SenderType.BOT, reply
            )
            await ChatRepository(session).touch_last_message_at(chat_id)
            await session.commit()
            payload = MessageResponse.model_validate(bot_message)

        log.info("Bot reply stored", bot_message_id=payload.id)
        await self._notify(
            user_id, chat_id, ResponseReadyEvent(chat_id=chat_id, message=payload)
        )
        return payload

    async def run(self, job: ChatJob) -> MessageResponse:
        """Run one attempt under the job's wall-clock budget.

        Any failure is announced on the channel and re-raised so the worker
        can decide between retrying and giving up.
        """
        timeout = asyncio.timeout(job.timeout_seconds)
        try:
            async with timeout:
                return await self.execute(
                    job.user_id, job.chat_id, job.message, job.correlation_id
                )
        except TimeoutError as exc:
            if not timeout.expired():
                await self._report_attempt_failure(job, exc)
                raise
            error = JobTimeoutError(job.timeout_seconds)
            await self._report_attempt_failure(job, error)
            raise error from exc
        except Exception as exc:
            await self._report_attempt_failure(job, exc)
            raise

    async def failed(self, job: ChatJob, exc: BaseException) -> None:
        """Terminal failure: log the cause and send the generic error."""
        logger.error(
            "Chat job failed permanently",
            job_id=job.job_id,
            user_id=job.user_id,
            chat_id=job.chat_id,
            message_id=job.correlation_id,
            attempts=job.attempt,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        await self._notify(
            job.user_id,
            job.chat_id,
            ErrorOccurredEvent(chat_id=job.chat_id, error=TERMINAL_FAILURE_MESSAGE),
        )

    async def _report_attempt_failure(self, job: ChatJob, exc: BaseException) -> None:
        logger.error(
            "Chat job attempt failed",
            job_id=job.job_id,
            user_id=job.user_id,
            chat_id=job.chat_id,
            attempt=job.attempt,
            max_attempts=job.max_attempts,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        text = ATTEMPT_FAILED_MESSAGE.format(
            attempt=job.attempt, max_attempts=job.max_attempts
        )
        await self._notify(
            job.user_id,
            job.chat_id,
            ErrorOccurredEvent(chat_id=job.chat_id, error=text),
        )

    async def _notify(
        self, user_id: int, chat_id: int, event: NotificationEvent
    ) -> None:
        try:
            await self._notifications.publish(user_id, chat_id, event)
        except Exception as exc:
            logger.warning(
                "Notification delivery failed",
                user_id=user_id,
                chat_id=chat_id,
                event_type=event.type,
                error=str(exc),
            )
