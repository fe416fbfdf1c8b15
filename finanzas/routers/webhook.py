import logging

from fastapi import APIRouter, Request
from telegram import Update
from telegram.error import TelegramError

from finanzas.bot import lifecycle

logger = logging.getLogger(__name__)

router = APIRouter(tags=["bot"])


@router.post("/webhook")
async def telegram_webhook(request: Request):
    ptb_app = lifecycle.ptb_app
    if not ptb_app:
        return {"error": "Bot not initialized"}
    try:
        data = await request.json()
        update = Update.de_json(data, ptb_app.bot)
        await ptb_app.process_update(update)
        return {"status": "ok"}
    except (TelegramError, ValueError) as e:
        logger.error(f"Webhook error: {e}")
        return {"status": "error"}
