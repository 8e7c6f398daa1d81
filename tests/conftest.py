"""Pytest configuration and fixtures."""

import os
import time
from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import fakeredis.aioredis
import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from app.core.config import settings
from app.core.database import Base, build_engine
from app.core.rate_limit import limiter
from app.core.settings import QueueConfig
from app.models.chat import Chat, ChatStatus
from app.models.message import Message, SenderType
from app.models.user import User

# --- Test DB (SQLite in-memory, foreign keys enforced) ---

test_engine = build_engine("sqlite+aiosqlite:///:memory:")
test_session_factory = async_sessionmaker(
    test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(autouse=True)
async def setup_db() -> AsyncGenerator[None, None]:
    """Create all tables before each test, drop after."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def override_get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# --- Test Redis (fakeredis) ---


@pytest.fixture
def redis_server() -> fakeredis.FakeServer:
    """Isolated fake Redis server; clients built on it share state."""
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(redis_server: fakeredis.FakeServer) -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fake Redis client."""
    return fakeredis.aioredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture(autouse=True)
def patch_redis(
    fake_redis: fakeredis.aioredis.FakeRedis, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Patch the global redis_client used by get_redis()."""
    monkeypatch.setattr("app.core.redis.redis_client", fake_redis)


@pytest.fixture(autouse=True)
def reset_rate_limits() -> None:
    """Start every test with empty rate limit counters."""
    limiter.reset()


@pytest.fixture
def queue_config() -> QueueConfig:
    """Fast queue settings: no backoff, short timeouts."""
    return QueueConfig(
        name="test",
        worker_id="test-worker",
        max_attempts=3,
        job_timeout_seconds=5,
        retry_backoff_seconds=0,
        poll_timeout_seconds=1,
        concurrency=2,
        chat_lock_timeout_seconds=30,
        status_ttl_seconds=600,
    )


# --- Token helpers ---


def make_access_token(
    user_id: int = 1,
    email: str | None = "test@test.com",
    role: str = "user",
    expires_in: int = 900,
    token_type: str = "access",
) -> str:
    """Sign a token the way the identity service does."""
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "type": token_type,
        "exp": int(time.time()) + expires_in,
    }
    return jwt.encode(
        payload,
        settings.auth.secret_key.get_secret_value(),
        algorithm=settings.auth.algorithm,
    )


def make_auth_headers(
    user_id: int = 1,
    email: str = "test@test.com",
    role: str = "user",
) -> dict[str, str]:
    """Generate Authorization headers with a valid access token."""
    token = make_access_token(user_id=user_id, email=email, role=role)
    return {"Authorization": f"Bearer {token}"}


# --- Seed helpers ---


async def create_user(
    session: AsyncSession, user_id: int = 1, email: str | None = None
) -> User:
    """Insert a user row with a fixed id."""
    address = email or f"user{user_id}@test.com"
    user = User(id=user_id, email=address, username=address.split("@")[0])
    session.add(user)
    await session.flush()
    return user


async def create_chat(
    session: AsyncSession,
    user_id: int = 1,
    status: ChatStatus = ChatStatus.ACTIVE,
) -> Chat:
    """Insert a chat for an existing user."""
    chat = Chat(user_id=user_id, status=status)
    session.add(chat)
    await session.flush()
    await session.refresh(chat)
    return chat


async def create_message(
    session: AsyncSession,
    chat_id: int,
    content: str,
    sender_type: SenderType = SenderType.USER,
) -> Message:
    """Insert a message into a chat."""
    message = Message(chat_id=chat_id, sender_type=sender_type, content=content)
    session.add(message)
    await session.flush()
    await session.refresh(message)
    return message


# --- App override & client fixtures ---


def _get_app():  # type: ignore[no-untyped-def]
    """Import app lazily and apply overrides."""
    from app.core.database import get_async_session as original_dep
    from app.dependencies import get_session_factory
    from app.main import app

    app.dependency_overrides[original_dep] = override_get_async_session
    app.dependency_overrides[get_session_factory] = lambda: test_session_factory
    return app


@pytest.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client without credentials."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    application.dependency_overrides.clear()


@pytest.fixture
async def authed_client() -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client authenticated as user 1."""
    application = _get_app()
    transport = ASGITransport(app=application)
    async with AsyncClient(
        transport=transport, base_url="http://test", headers=make_auth_headers()
    ) as ac:
        yield ac
    application.dependency_overrides.clear()


# --- DB session for tests ---


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a raw async session for repository tests."""
    async with test_session_factory() as session:
        yield session


# --- Mock LLM ---


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock LLM for testing."""
    mock = MagicMock(spec=BaseChatModel)
    mock.ainvoke = AsyncMock(return_value=AIMessage(content="Test response"))
    return mock
