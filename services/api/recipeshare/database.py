"""
Async SQLAlchemy engine + session factory for the entity store.

Production runs against a MySQL-protocol server through the aiomysql
driver. The engine is created once at import and reused across all
requests; the notification pipeline and the retention reaper open their
own short sessions from the same factory.
"""
import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from recipeshare.config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str) -> AsyncEngine:
    kwargs = {"pool_pre_ping": True, "echo": False}
    if not url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.sqlalchemy_url)

AsyncSessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    pass


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create all tables if they don't exist (idempotent)."""
    # models must be imported so their tables are registered on Base.metadata
    from recipeshare import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialised")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """FastAPI dependency for components that manage their own sessions."""
    return AsyncSessionLocal


async def get_db():
    """FastAPI dependency that yields an async DB session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
