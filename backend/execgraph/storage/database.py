"""Async engine, session factory and the request-scoped session dependency."""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from execgraph.config import Settings, get_settings
from execgraph.db_base import Base


def engine_options(settings: Settings) -> dict:
    """Engine keyword arguments for the configured backend.

    SQLite (tests, local runs) gets no pool sizing; Postgres gets a
    pre-pinged pool sized from settings.
    """
    options: dict = {"echo": settings.debug}
    if settings.database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        return options

    options.update(
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    return options


settings = get_settings()

engine = create_async_engine(settings.database_url, **engine_options(settings))

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    """One session per request: committed when the handler returns, rolled back if it raises."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables. Schema changes go through alembic."""
    from execgraph.storage import models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
