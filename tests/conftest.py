"""
Test configuration and fixtures for the donor registry.
Provides in-memory databases and an authenticated HTTP client.
"""

from typing import AsyncGenerator, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

import donor_registry.models  # noqa: F401  registers tables on Base.metadata
from donor_registry.config import Settings
from donor_registry.database import create_session_factory
from donor_registry.db.base import Base
from donor_registry.main import create_application
from tests.factories import ADMIN_PASSWORD, ADMIN_USERNAME

# In-memory SQLite for fast tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def make_test_engine():
    return create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATABASE_URL=TEST_DATABASE_URL,
        SECRET_KEY="test-secret-key-for-jwt-tokens",
        ADMIN_USERNAME=ADMIN_USERNAME,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
        LOG_LEVEL="WARNING",
        LOG_TO_FILE=False,
    )

@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh database and session for each service-level test."""
    engine = make_test_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = create_session_factory(engine)
    async with session_factory() as session:
        yield session

    await engine.dispose()

@pytest.fixture
def client(settings: Settings) -> Generator[TestClient, None, None]:
    """
    HTTP client against a fresh application. The lifespan creates the
    tables inside the client's own event loop.
    """
    app = create_application(settings, engine=make_test_engine())
    with TestClient(app) as test_client:
        yield test_client

@pytest.fixture
def auth_headers(client: TestClient) -> dict:
    response = client.post(
        "/api/auth/login",
        json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['token']}"}
