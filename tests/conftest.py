# tests/conftest.py
import os

# Must be set before anything under app/ reads settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import app.models  # noqa: F401
from app.core.db import Base, get_db
from app.main import app as fastapi_app
from tests.factories import make_member, make_offer, make_partner, make_user


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed SQLite so several sessions can race on the same rows."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield eng
    finally:
        await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    """Async client with a fresh database session per request."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    fastapi_app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def member_user(db):
    return await make_member(db)


@pytest_asyncio.fixture
async def partner_pair(db):
    """(user, partner profile) for an approved shop."""
    return await make_partner(db)


@pytest_asyncio.fixture
async def admin_user(db):
    return await make_user(db, role="admin")


@pytest_asyncio.fixture
async def offer(db, partner_pair):
    _, partner = partner_pair
    return await make_offer(db, partner)
