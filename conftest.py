import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Settings are read at import time; point them at a throwaway database first.
# TEST_DATABASE_URL may name a Postgres database to run the suite (and the
# row-locking tests) against.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

from libs.common.config import get_settings  # noqa: E402
from libs.db.base import Base  # noqa: E402

# Import all models so metadata includes every table
from services.members_service import models as _member_models  # noqa: E402,F401
from services.payments_service import models as _payment_models  # noqa: E402,F401
from services.store_service import models as _store_models  # noqa: E402,F401
from services.wallet_service import models as _wallet_models  # noqa: E402,F401

get_settings.cache_clear()
settings = get_settings()

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")


def _is_postgres(url: str | None) -> bool:
    return bool(url) and url.startswith("postgresql")


@pytest.fixture
def is_postgres() -> bool:
    return _is_postgres(TEST_DATABASE_URL)


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    Fresh schema per test.

    SQLite uses a file in tmp_path so separate sessions get separate
    connections, as they would against Postgres.
    """
    if _is_postgres(TEST_DATABASE_URL):
        db_url = TEST_DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)
    else:
        db_url = f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}"

    engine = create_async_engine(db_url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for arranging and asserting. Service code commits through it."""
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def provider_clients():
    from tests.stubs import make_provider_clients

    return make_provider_clients()


def _wire_app(app, session_factory, provider_clients, current_user):
    """Route an app's DB, session factory, provider and auth dependencies to the test doubles."""
    from libs.auth.dependencies import get_current_user
    from libs.db.session import get_async_db, get_session_factory
    from services.payments_service.clients import get_provider_clients

    async def _db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    async def _current_user():
        return current_user.user

    app.dependency_overrides[get_async_db] = _db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_provider_clients] = lambda: provider_clients
    app.dependency_overrides[get_current_user] = _current_user


@pytest.fixture
def current_user():
    """Mutable holder for the caller every app client authenticates as."""
    from tests.factories import CurrentUser

    return CurrentUser()


async def _client_for(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def store_client(session_factory, provider_clients, current_user):
    from services.store_service.app.main import app

    _wire_app(app, session_factory, provider_clients, current_user)
    async for ac in _client_for(app):
        yield ac


@pytest_asyncio.fixture
async def payments_client(session_factory, provider_clients, current_user):
    from services.payments_service.app.main import app

    _wire_app(app, session_factory, provider_clients, current_user)
    async for ac in _client_for(app):
        yield ac


@pytest_asyncio.fixture
async def wallet_client(session_factory, provider_clients, current_user):
    from services.wallet_service.app.main import app

    _wire_app(app, session_factory, provider_clients, current_user)
    async for ac in _client_for(app):
        yield ac
