from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update, WebAppInfo
from telegram.ext import ContextTypes

from finanzas.config import WEB_APP_URL


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user_name = update.effective_user.first_name
    welcome_text = f"¡Hola, {user_name}! 🚀\nBienvenido a Finanzas Pro, el control financiero de tu empresa."

    reply_markup = None
    if WEB_APP_URL:
        keyboard = [[InlineKeyboardButton("✨ Abrir Finanzas Pro", web_app=WebAppInfo(url=WEB_APP_URL))]]
        reply_markup = InlineKeyboardMarkup(keyboard)

    await update.message.reply_text(welcome_text, reply_markup=reply_markup)
