"""Integration test fixtures with a real database.

Uses a throwaway SQLite file per test through aiosqlite, so the same
SQLAlchemy models and repository run as in production. API tests drive
the application over ASGI against the in-memory repository.
"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from royalty_engine.api.app import create_app
from royalty_engine.config import Settings
from royalty_engine.database import Database
from royalty_engine.repository.memory import InMemoryRepository
from royalty_engine.repository.sql import SqlAlchemyRepository
from tests.factories import Catalog, build_catalog

TEST_SETTINGS = Settings(
    database_url="sqlite+aiosqlite:///:memory:",
    engine_version="test",
    host="127.0.0.1",
    port=8000,
    debug=False,
)


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Database with every table created."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'royalty_test.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def sql_repo(database: Database) -> SqlAlchemyRepository:
    return SqlAlchemyRepository(database.session_factory)


@pytest_asyncio.fixture
async def sql_catalog(sql_repo: SqlAlchemyRepository, user_id) -> Catalog:
    catalog = build_catalog(user_id)
    await sql_repo.add(*catalog.records())
    return catalog


@pytest_asyncio.fixture
async def client(repo: InMemoryRepository) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app(settings=TEST_SETTINGS, repository=repo)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
