from telegram.ext import Application, CommandHandler

from finanzas.bot.handlers import start_command


def build_bot_app(token: str) -> Application:
    application = Application.builder().token(token).build()
    application.add_handler(CommandHandler("start", start_command))
    return application
