from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from access_guard.config import settings


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy ORM models."""
    pass


def create_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    """Create the async engine for *url* (defaults to settings.DATABASE_URL)."""
    return create_async_engine(
        url or settings.DATABASE_URL,
        echo=False,
        pool_pre_ping=True,
        **kwargs,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables known to Base.metadata."""
    import access_guard.models  # noqa: F401 — populate Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
