"""Global dependencies for the application."""

from collections.abc import Callable
from functools import lru_cache

import httpx
import redis.asyncio as redis
from fastapi import Depends, Request
from langchain_anthropic import ChatAnthropic
from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ConfigDict
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.database import async_session_factory, get_async_session
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.redis import get_redis
from app.repositories.chat_repo import ChatRepository
from app.repositories.message_repo import MessageRepository
from app.repositories.user_repo import UserRepository
from app.services.chat_message_task import ProcessChatMessageJob
from app.services.chat_service import ChatService
from app.services.conversation_engine import ConversationEngine
from app.services.job_queue import JobQueue
from app.services.message_service import MessageService
from app.services.notification_service import NotificationChannel
from app.services.weather_service import WeatherLookupClient

# --- LLM and outbound clients ---


@lru_cache
def get_llm() -> BaseChatModel:
    """Get the LLM instance based on the configured provider."""
    llm_config = settings.llm
    match llm_config.provider:
        case "openai":
            return ChatOpenAI(
                model=llm_config.openai_model,
                api_key=llm_config.openai_api_key,
                max_tokens=llm_config.max_tokens,  # type: ignore[call-arg]
                temperature=llm_config.temperature,
                timeout=llm_config.timeout_seconds,
                max_retries=1,
            )
        case "anthropic":
            return ChatAnthropic(  # type: ignore[call-arg]
                model_name=llm_config.anthropic_model,
                api_key=llm_config.anthropic_api_key,
                max_tokens=llm_config.max_tokens,
                temperature=llm_config.temperature,
                timeout=llm_config.timeout_seconds,
                max_retries=1,
            )
        case _:
            raise ValueError(f"Unsupported LLM provider: {llm_config.provider}")


def build_http_client() -> httpx.AsyncClient:
    """Shared outbound HTTP client; one connection pool per process."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.weather.timeout_seconds),
        headers={"User-Agent": settings.app.name},
    )


def build_conversation_engine(http_client: httpx.AsyncClient) -> ConversationEngine:
    """Wire the engine to the configured LLM and the weather provider."""
    return ConversationEngine(
        llm=get_llm(),
        weather_client=WeatherLookupClient(http_client, settings.weather),
        language=settings.llm.response_language,
    )


def build_chat_message_job(
    http_client: httpx.AsyncClient,
    redis_client: redis.Redis,  # type: ignore[type-arg]
) -> ProcessChatMessageJob:
    """Job runner used by the worker process."""
    return ProcessChatMessageJob(
        engine=build_conversation_engine(http_client),
        notifications=NotificationChannel(redis_client),
        history_limit=settings.chat.history_limit,
    )


# --- Auth dependencies ---


class CurrentUser(BaseModel):
    """Authenticated user extracted from request state."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str | None = None
    role: str


def get_current_user(request: Request) -> CurrentUser:
    """Extract the authenticated user from middleware-populated state."""
    state = getattr(request, "state", None)
    user_id = getattr(state, "user_id", None) if state else None
    if user_id is None:
        raise AuthenticationError(message="Not authenticated")
    return CurrentUser(
        id=state.user_id,
        email=state.email,
        role=state.role,
    )


def require_role(*allowed_roles: str) -> Callable[..., CurrentUser]:
    """Dependency factory that enforces role-based access control."""

    def _check(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.role not in allowed_roles:
            raise AuthorizationError(
                message=f"Role '{current_user.role}' is not permitted"
            )
        return current_user

    return _check


# --- Repositories ---


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for handlers that outlive a single request scope."""
    return async_session_factory


def get_user_repository(
    session: AsyncSession = Depends(get_async_session),
) -> UserRepository:
    """Get UserRepository bound to the current session."""
    return UserRepository(session)


def get_chat_repository(
    session: AsyncSession = Depends(get_async_session),
) -> ChatRepository:
    """Get ChatRepository bound to the current session."""
    return ChatRepository(session)


def get_message_repository(
    session: AsyncSession = Depends(get_async_session),
) -> MessageRepository:
    """Get MessageRepository bound to the current session."""
    return MessageRepository(session)


# --- Services ---


def get_job_queue() -> JobQueue:
    """Get JobQueue backed by the active Redis client."""
    return JobQueue(get_redis(), settings.queue)


def get_notification_channel() -> NotificationChannel:
    """Get NotificationChannel backed by the active Redis client."""
    return NotificationChannel(get_redis())


def get_chat_service(
    chat_repo: ChatRepository = Depends(get_chat_repository),
    message_repo: MessageRepository = Depends(get_message_repository),
    user_repo: UserRepository = Depends(get_user_repository),
    current_user: CurrentUser = Depends(get_current_user),
) -> ChatService:
    """Get ChatService for the authenticated user."""
    return ChatService(
        chat_repo=chat_repo,
        message_repo=message_repo,
        user_repo=user_repo,
        user_id=current_user.id,
        email=current_user.email,
    )


def get_message_service(
    session: AsyncSession = Depends(get_async_session),
    chat_repo: ChatRepository = Depends(get_chat_repository),
    message_repo: MessageRepository = Depends(get_message_repository),
    job_queue: JobQueue = Depends(get_job_queue),
    current_user: CurrentUser = Depends(get_current_user),
) -> MessageService:
    """Get MessageService for the authenticated user."""
    return MessageService(
        session=session,
        chat_repo=chat_repo,
        message_repo=message_repo,
        job_queue=job_queue,
        chat_config=settings.chat,
        queue_config=settings.queue,
        user_id=current_user.id,
    )
