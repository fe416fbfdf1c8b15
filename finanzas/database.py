import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_recycle=1800,  # Recycle connections every 30 minutes to prevent timeouts
        pool_pre_ping=True,  # Check connection liveness before usage (critical for cloud DBs)
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def probe_connection(engine: AsyncEngine) -> bool:
    """Runs ``SELECT 1`` against the engine. Never raises."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection test successful")
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database connection test failed: {e}")
        return False
