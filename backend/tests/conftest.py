"""Pytest configuration and shared fixtures for API tests."""

import os
import tempfile

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test DB and settings before app imports so config/engine use them
_tmpdir = tempfile.mkdtemp(prefix="taskapp-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_tmpdir}/test.db")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

from taskapp.core.auth import create_access_token, hash_password
from taskapp.db.base import Base
from taskapp.db.session import async_session_maker, engine
from taskapp.main import app
from taskapp.models.user import User
import taskapp.models  # noqa: F401 - register all tables


@pytest_asyncio.fixture
async def clean_db():
    """Drop and recreate all tables so the next test has a clean DB."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield


@pytest_asyncio.fixture
async def client(clean_db):
    """Yield AsyncClient bound to the ASGI app (no lifespan, no scheduler)."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def error_client(clean_db):
    """Like client, but unhandled server errors come back as 500 responses instead of raising."""
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac


async def create_user(email: str = "test@test.com", password: str = "password123", name: str = "Test") -> tuple[int, str, str]:
    """Create a user via DB (committed) and return (user_id, email, access_token)."""
    async with async_session_maker() as session:
        user = User(email=email, password_hash=hash_password(password), name=name)
        session.add(user)
        await session.commit()
        await session.refresh(user)
        token = create_access_token(user.id, user.email)
        return user.id, user.email, token


@pytest_asyncio.fixture
async def test_user(client):
    return await create_user()


@pytest.fixture
def auth_headers(test_user):
    """Return dict of Authorization header for test_user."""
    _, __, token = test_user
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def other_headers(test_user):
    """Authorization header for a second, unrelated user."""
    _, __, token = await create_user(email="other@test.com", name="Other")
    return {"Authorization": f"Bearer {token}"}
