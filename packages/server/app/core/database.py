"""
Database engine and session management.

Production runs on PostgreSQL through asyncpg. SQLite (aiosqlite) is
supported for local runs and tests; an in-memory SQLite URL gets a single
shared connection so every session sees the same schema.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.core.config import get_settings


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database in (None, "", ":memory:"):
            return create_async_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_async_engine(url, echo=echo)
    # Long-lived pooled connections; drop the ones the server closed
    return create_async_engine(url, echo=echo, pool_pre_ping=True)


def make_session_factory(bind: AsyncEngine) -> sessionmaker:
    """Sessions keep loaded attributes after commit so responses can be built."""
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


async def create_schema(bind: AsyncEngine) -> None:
    import app.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


settings = get_settings()

engine = make_engine(settings.database_url, echo=settings.debug)

async_session_factory = make_session_factory(engine)


async def init_db():
    """Create all tables (development only; use migrations in production)."""
    await create_schema(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with get_session_context() as session:
        yield session


@asynccontextmanager
async def get_session_context():
    """Session that commits on success and rolls back on error.

    Looks up ``async_session_factory`` at call time so tests can rebind it.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
