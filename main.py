import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from finanzas.bot.lifecycle import start_bot, stop_bot
from finanzas.config import CORS_ORIGINS, DATABASE_URL, ENVIRONMENT, IS_PRODUCTION
from finanzas.routers import accounts, analytics, auth, bot, categories, transactions, users, webhook
from finanzas.storage.base import StorageError
from finanzas.storage.factory import build_storage

# --- Logging ---
logging.basicConfig(format="%(asctime)s - %(name)s - %(levelname)s - %(message)s", level=logging.INFO)
logger = logging.getLogger(__name__)


# --- Lifespan ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    # 1. Pick storage backend (database, or in-memory fallback)
    app.state.storage = await build_storage(DATABASE_URL)
    logger.info(f"Storage backend: {app.state.storage.name}")

    # 2. Start Services
    await start_bot(app.state.storage)

    yield

    # 3. Graceful Shutdown
    await stop_bot()
    await app.state.storage.close()


# --- FastAPI Initialization ---
app = FastAPI(title="Finanzas Pro API", lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error Handlers ---
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"] if part != "body"), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"detail": "Validation error", "errors": errors})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    content = {"detail": "Internal server error"}
    if not IS_PRODUCTION:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# --- API Routers ---
app.include_router(auth.router, prefix="/api")
app.include_router(users.router, prefix="/api")
app.include_router(categories.router, prefix="/api")
app.include_router(accounts.router, prefix="/api")
app.include_router(transactions.router, prefix="/api")
app.include_router(analytics.router, prefix="/api")
app.include_router(bot.router, prefix="/api")
app.include_router(webhook.router)


@app.get("/api/health")
async def health(request: Request):
    storage = getattr(request.app.state, "storage", None)
    return {
        "status": "ok",
        "environment": ENVIRONMENT,
        "storage": storage.name if storage else None,
    }
