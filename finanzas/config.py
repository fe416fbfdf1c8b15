import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT == "production"

BOT_TOKEN = os.getenv("BOT_TOKEN")
WEB_APP_URL = os.getenv("WEB_APP_URL")

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "finanzas-session")
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "24"))

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

DATABASE_URL = os.getenv("DATABASE_URL")

# Ensure async driver usage for SQLAlchemy compatibility
if DATABASE_URL and DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

if not DATABASE_URL:
    logger.warning("DATABASE_URL is missing. Data will be kept in memory only.")
