"""Fixtures for HTTP tests against the booking app.

The database, the authenticated user and the Stripe client are swapped
through ``app.dependency_overrides``; everything else runs for real.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.db.session import get_async_db
from services.booking_service.app.main import create_app
from services.booking_service.stripe_client import get_stripe_client


class ActingUser:
    """Switches who the next request is authenticated as."""

    def __init__(self):
        self.user = AuthUser(sub="student-1", email="student1@test.com", role="student")

    def student(self, user_id: str = "student-1", email: str = None) -> AuthUser:
        self.user = AuthUser(
            sub=user_id, email=email or f"{user_id}@test.com", role="student"
        )
        return self.user

    def instructor(self, user_id: str = "instructor-1") -> AuthUser:
        self.user = AuthUser(
            sub=user_id, email=f"{user_id}@test.com", role="instructor"
        )
        return self.user

    def admin(self, user_id: str = "admin-1") -> AuthUser:
        self.user = AuthUser(sub=user_id, email=f"{user_id}@test.com", role="admin")
        return self.user


@pytest.fixture
def acting_as() -> ActingUser:
    return ActingUser()


@pytest_asyncio.fixture
async def booking_client(session_factory, acting_as, fake_stripe):
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_current_user():
        return acting_as.user

    app.dependency_overrides[get_async_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_stripe_client] = lambda: fake_stripe

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def anonymous_client(session_factory, fake_stripe):
    """Client with no auth override; bearer tokens are checked for real."""
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: fake_stripe

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def seed(session_factory):
    """Persist ORM objects in their own session and commit."""

    async def _seed(*objects):
        async with session_factory() as session:
            session.add_all(objects)
            await session.commit()
        return objects

    return _seed
