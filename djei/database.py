"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request
  - insert_for(): Dialect-aware INSERT that supports ON CONFLICT clauses

Architecture note:
  aiosqlite is used for local development and tests. In production only
  DATABASE_URL changes (postgresql+asyncpg://...). Both dialects support
  the ON CONFLICT and RETURNING clauses the token ledger relies on.

Session lifecycle:
  Each API request gets its own session via get_db(). The session commits on
  success and on domain errors, and rolls back on any unexpected exception.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from djei.config import settings
from djei.exceptions import DJEIAPIError


# echo=True in debug mode logs all SQL statements
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)

# expire_on_commit=False prevents lazy-load errors after commit in async context
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def insert_for(session: AsyncSession, table):
    """
    Return a dialect-specific INSERT construct for `table`.

    The generic sqlalchemy.insert() has no ON CONFLICT support, so the
    ledger and role services build their insert-if-absent and upsert
    statements through this helper.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise RuntimeError(f"Unsupported database dialect: {dialect}")


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except DJEIAPIError:
            # Domain errors (e.g. InsufficientFundsError) are raised before any
            # balance mutation; anything already flushed is intentional.
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
