import logging
from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from config.settings import Settings
from db.models import Base


def build_engine(settings: Settings) -> AsyncEngine:
    engine_kwargs = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    if not settings.DATABASE_URL.startswith("sqlite"):
        engine_kwargs.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)
    return create_async_engine(settings.DATABASE_URL, **engine_kwargs)


def init_db_connection(settings: Settings) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Engine plus session factory. Sessions keep loaded attributes after commit."""
    engine = build_engine(settings)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    logging.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine, session_factory


async def create_all_tables(engine: AsyncEngine):
    """Schema bootstrap for local runs without Alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logging.info("Database tables created (create_all)")
