from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker

from .config import settings


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """asyncpg against Supabase Postgres in production, aiosqlite locally"""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=300,
    )


# Engine and session factory exist only when DATABASE_URL is set
engine: Optional[AsyncEngine] = build_engine(settings.database_url, settings.database_echo) if settings.database_url else None

AsyncSessionLocal: Optional[async_sessionmaker] = None
if engine:
    AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request. Uncommitted work is rolled back on error."""
    if not AsyncSessionLocal:
        raise RuntimeError(
            "Database not configured. Set DATABASE_URL (postgresql+asyncpg://...) in your .env file."
        )
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
