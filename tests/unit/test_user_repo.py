"""Unit tests for UserRepository."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.user_repo import UserRepository
from tests.conftest import test_session_factory


@pytest.fixture
def user_repo(db_session: AsyncSession) -> UserRepository:
    """Create a UserRepository backed by the test DB session."""
    return UserRepository(db_session)


class TestUserRepository:
    async def test_create_and_find(self, user_repo: UserRepository) -> None:
        user = await user_repo.create(email="ana@test.com", username="ana")

        assert user.role == "user"
        assert (await user_repo.find_by_id(user.id)) is user
        assert (await user_repo.find_by_email("ana@test.com")) is user
        assert await user_repo.find_by_email("nobody@test.com") is None

    async def test_get_or_create_mirrors_principal(
        self, user_repo: UserRepository
    ) -> None:
        user = await user_repo.get_or_create(42, "bob@test.com")

        assert user.id == 42
        assert user.email == "bob@test.com"
        assert user.username == "bob"

    async def test_get_or_create_is_idempotent(
        self, user_repo: UserRepository
    ) -> None:
        first = await user_repo.get_or_create(7, "carol@test.com")
        second = await user_repo.get_or_create(7, "other@test.com")

        assert first is second
        assert second.email == "carol@test.com"

    async def test_get_or_create_without_email(
        self, user_repo: UserRepository
    ) -> None:
        user = await user_repo.get_or_create(9)

        assert user.email == "user-9@users.invalid"

    async def test_imported_session_factory_shares_fixture_database(
        self, user_repo: UserRepository, db_session: AsyncSession
    ) -> None:
        await user_repo.create(email="dan@test.com", username="dan")
        await db_session.commit()

        async with test_session_factory() as session:
            found = await UserRepository(session).find_by_email("dan@test.com")

        assert found is not None
        assert found.username == "dan"
