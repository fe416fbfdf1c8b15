import logging

from telegram.error import TelegramError
from telegram.ext import Application

from finanzas.bot.loader import build_bot_app
from finanzas.config import BOT_TOKEN
from finanzas.storage.base import Storage, StorageError

logger = logging.getLogger(__name__)

ptb_app: Application | None = None


async def _resolve_token(storage: Storage) -> str | None:
    if BOT_TOKEN:
        return BOT_TOKEN
    try:
        config = await storage.get_bot_config()
    except StorageError:
        logger.warning("[Bot]: could not read stored bot config")
        return None
    if config and config.is_active:
        return config.bot_token
    return None


async def start_bot(storage: Storage) -> None:
    global ptb_app

    token = await _resolve_token(storage)
    if not token:
        logger.info("[Bot]: no active bot token, skipping bot initialization")
        return

    try:
        application = build_bot_app(token)
        await application.initialize()
    except TelegramError as e:
        logger.error(f"[Bot]: initialization failed: {e}")
        return

    ptb_app = application
    logger.info("[Bot]: Initialized successfully")


async def stop_bot() -> None:
    global ptb_app

    if ptb_app:
        await ptb_app.shutdown()
        ptb_app = None
        logger.info("[Bot]: Shutdown successfully")
