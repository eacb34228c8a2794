"""Async database engine and session management."""

from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from survey_engine.config import settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


async def init_db(database_url: Optional[str] = None) -> None:
    """Create the engine and session factory if they do not exist yet."""
    global engine, AsyncSessionLocal

    if engine is not None:
        return

    url = database_url or settings.database_url
    engine = create_async_engine(url, echo=settings.db_echo, future=True)
    AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    logger.info("Database engine initialized", dialect=engine.dialect.name)


async def create_tables() -> None:
    """Create all tables registered on the declarative base."""
    if engine is None:
        await init_db()

    # Ensure models are registered before create_all
    from survey_engine import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def close_db() -> None:
    """Dispose the engine and drop the session factory."""
    global engine, AsyncSessionLocal

    if engine is None:
        return

    await engine.dispose()
    engine = None
    AsyncSessionLocal = None
    logger.info("Database engine disposed")


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session bound to the shared engine."""
    if AsyncSessionLocal is None:
        await init_db()

    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
