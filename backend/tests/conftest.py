"""Pytest configuration and fixtures for async testing."""
import os
from typing import AsyncGenerator, Callable
from uuid import UUID, uuid4

# The application engine is built at import time; point it at SQLite before
# anything from wellness is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from wellness.auth.jwt import jwt_auth
from wellness.database import Base
from wellness.main import app

# Test database URL (in-memory SQLite shared across the connection pool)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Create async test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create async session factory for tests
TestAsyncSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    # Create all tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Create session
    async with TestAsyncSessionLocal() as session:
        yield session
        await session.rollback()

    # Drop all tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
def auth_headers() -> Callable[..., dict[str, str]]:
    """
    Build Authorization headers carrying a locally signed access token.

    Usage:
        headers = auth_headers("patient", user_id=patient_id)
    """

    def _headers(role: str = "admin", user_id: UUID | None = None) -> dict[str, str]:
        token = jwt_auth.create_access_token(
            user_id=user_id or uuid4(),
            email=f"{role}@example.com",
            role=role,
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with database dependency override.

    Authentication is not overridden; requests carry tokens from ``auth_headers``.

    Args:
        db_session: Test database session fixture

    Yields:
        AsyncClient: Async HTTP client for API testing
    """
    from wellness.api.deps import get_db

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()
