"""Async database engine and session management.

Postgres in production. SQLite (aiosqlite) is accepted for local runs and
tests; it gets a plain pool since the sizing options below are Postgres-only.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from slotbook.core.config import settings

_engine_options: dict = {"echo": settings.database_echo}
if not settings.database_url.startswith("sqlite"):
    _engine_options.update(pool_size=20, max_overflow=10, pool_pre_ping=True)

engine = create_async_engine(settings.database_url, **_engine_options)

async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session. Used as a FastAPI dependency."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
