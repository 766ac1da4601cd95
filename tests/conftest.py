"""
Test fixtures for the DJEI API test suite.

This module provides shared fixtures used across all test files:

  - db_engine / db_session: Fresh in-memory SQLite database for each test
  - file_sessionmaker: File-backed SQLite, one connection per session, for
    tests that run ledger operations concurrently
  - client: Async HTTP test client (unauthenticated)
  - member_client / second_member_client / admin_client: clients carrying
    bearer tokens minted with the identity provider's secret
  - catalog / payments: integration clients the routes receive, overridable
    per test

Key design decisions:
  - We override FastAPI's get_db dependency to inject our test session,
    so the application code works exactly as it does in production.
  - Tokens are minted locally with create_access_token(), the same shape the
    identity provider issues, so authentication runs for real.
  - Each user gets its own AsyncClient so headers never leak between users.
"""

import os

os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-djei-tests")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import AsyncClient, ASGITransport  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402

from djei.database import Base, get_db  # noqa: E402
from djei.dependencies import get_catalog, get_payments  # noqa: E402
from djei.exceptions import DJEIAPIError  # noqa: E402
from djei.main import app  # noqa: E402
from djei.security import create_access_token  # noqa: E402
from djei.services.catalog_service import SpotifyCatalog  # noqa: E402
from djei.services.payment_service import StripePayments  # noqa: E402


# In-memory SQLite for fast, isolated tests
TEST_DATABASE_URL = "sqlite+aiosqlite://"

MEMBER_ID = "11111111-1111-1111-1111-111111111111"
SECOND_MEMBER_ID = "22222222-2222-2222-2222-222222222222"
ADMIN_ID = "99999999-9999-9999-9999-999999999999"


def bearer(user_id: str, **kwargs) -> dict:
    """Authorization header for a freshly minted token."""
    return {"Authorization": f"Bearer {create_access_token(user_id, **kwargs)}"}


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh async engine with all tables for each test."""
    engine = create_async_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    """Provide an async session bound to the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session() as session:
        yield session


@pytest_asyncio.fixture
async def file_sessionmaker(tmp_path):
    """
    Session factory over a SQLite file.

    Unlike the in-memory database (one shared connection), every session
    here gets its own connection, so concurrent sessions really contend
    for the same rows. The timeout lets writers wait for the lock.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def catalog():
    """An unconfigured catalog; tests needing a working one override it."""
    catalog = SpotifyCatalog()
    yield catalog
    await catalog.aclose()


@pytest.fixture
def payments():
    return StripePayments(secret_key=None)


@pytest_asyncio.fixture
async def make_client(db_engine, catalog, payments):
    """
    Factory for async HTTP test clients with the test database injected.

    Overrides get_db (mirroring its commit/rollback policy) and the
    integration dependencies, then hands out clients with optional headers.
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db():
        async with async_session() as session:
            try:
                yield session
                await session.commit()
            except DJEIAPIError:
                await session.commit()
                raise
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_catalog] = lambda: catalog
    app.dependency_overrides[get_payments] = lambda: payments

    clients = []

    def factory(headers: dict | None = None) -> AsyncClient:
        ac = AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
            headers=headers or {},
        )
        clients.append(ac)
        return ac

    yield factory

    for ac in clients:
        await ac.aclose()
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(make_client):
    """Unauthenticated client."""
    return make_client()


@pytest_asyncio.fixture
async def member_client(make_client):
    """Client for a regular member (no elevated privilege)."""
    return make_client(bearer(MEMBER_ID, email="member@example.com", user_metadata={"full_name": "Test Member"}))


@pytest_asyncio.fixture
async def second_member_client(make_client):
    """A second member, for cross-user tests."""
    return make_client(bearer(SECOND_MEMBER_ID, email="second@example.com"))


@pytest_asyncio.fixture
async def admin_client(make_client):
    """
    Client for an admin. Elevated privilege comes from app_metadata.role,
    which only the identity provider can set.
    """
    return make_client(bearer(ADMIN_ID, email="admin@example.com", app_metadata={"role": "admin"}))
