import asyncio
from collections.abc import AsyncGenerator, Awaitable
from typing import TypeVar

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from app.core.config import settings
from app.core.errors import InternalError

T = TypeVar("T")


def _async_database_url(url: str) -> str:
    # asyncpg does not accept psycopg params like sslmode/channel_binding.
    # Swap in the async driver and strip incompatible query params; SSL is enabled via connect_args.
    parsed = make_url(url)
    backend = parsed.get_backend_name()
    if backend == "postgresql":
        parsed = parsed.set(drivername="postgresql+asyncpg")
    elif backend == "sqlite":
        parsed = parsed.set(drivername="sqlite+aiosqlite")
    parsed = parsed.difference_update_query(["sslmode", "channel_binding"])
    return parsed.render_as_string(hide_password=False)


async_database_url = _async_database_url(settings.database_url)

if settings.is_sqlite:
    # SQLite (local dev and tests): no pooling, so connections never outlive an event loop
    engine = create_async_engine(
        async_database_url,
        echo=False,
        poolclass=NullPool,
    )
else:
    engine = create_async_engine(
        async_database_url,
        echo=settings.env == "development",
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        connect_args={
            "ssl": settings.env == "production",
            "command_timeout": settings.store_timeout_seconds,
        },
    )

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def bounded(call: Awaitable[T]) -> T:
    """Await a data-store call, failing with InternalError once store_timeout_seconds elapse.

    The call is never retried; retries belong to the caller of the API.
    """
    try:
        return await asyncio.wait_for(call, timeout=settings.store_timeout_seconds)
    except asyncio.TimeoutError as e:
        raise InternalError("data store call timed out") from e


async def init_db() -> None:
    """Create tables if using create_all; prefer Alembic in production."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
