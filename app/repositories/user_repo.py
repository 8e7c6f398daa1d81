"""User repository for database operations."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User


class UserRepository:
    """Encapsulates user-related database queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_by_id(self, user_id: int) -> User | None:
        """Find a user by primary key."""
        result = await self._session.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> User | None:
        """Find a user by email address."""
        result = await self._session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def create(self, email: str, username: str, role: str = "user") -> User:
        """Create a new user record mirrored from the identity service."""
        user = User(email=email, username=username, role=role)
        self._session.add(user)
        await self._session.flush()
        await self._session.refresh(user)
        return user

    async def get_or_create(self, user_id: int, email: str | None = None) -> User:
        """Mirror a token principal into the users table on first use."""
        user = await self.find_by_id(user_id)
        if user is not None:
            return user
        address = email or f"user-{user_id}@users.invalid"
        user = User(id=user_id, email=address, username=address.split("@")[0])
        self._session.add(user)
        await self._session.flush()
        await self._session.refresh(user)
        return user
