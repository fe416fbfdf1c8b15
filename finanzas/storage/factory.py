import logging

from finanzas.database import build_engine, build_session_maker, probe_connection
from finanzas.storage.base import Storage
from finanzas.storage.memory import MemStorage
from finanzas.storage.sql import DatabaseStorage

logger = logging.getLogger(__name__)


async def build_storage(database_url: str | None) -> Storage:
    """
    Picks the backend at process start: the database when it answers a
    connectivity probe, the in-memory store otherwise.
    """
    if not database_url:
        logger.warning("No DATABASE_URL configured, using in-memory storage")
        return MemStorage()

    engine = build_engine(database_url)
    if not await probe_connection(engine):
        await engine.dispose()
        logger.warning("Database unreachable, falling back to in-memory storage. Data will not persist!")
        return MemStorage()

    storage = DatabaseStorage(build_session_maker(engine), engine=engine)
    await storage.ensure_default_categories()
    logger.info("Using database storage")
    return storage
