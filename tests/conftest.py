import os

# Cheap hashes for the seeded admin and registrations; must be set before finanzas.config is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.pop("DATABASE_URL", None)

from collections.abc import AsyncGenerator  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from finanzas.dependencies import get_session_store, get_storage, require_auth  # noqa: E402
from finanzas.models.sql import Base  # noqa: E402
from finanzas.services.sessions import SessionStore  # noqa: E402
from finanzas.storage.memory import MemStorage  # noqa: E402
from finanzas.storage.sql import DatabaseStorage  # noqa: E402
from main import app  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Seeded demo data in MemStorage
ADMIN_ID = 1
CHECKING_ID = 1
SAVINGS_ID = 2


@pytest.fixture(scope="function")
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL, connect_args={"check_same_thread": False}, poolclass=StaticPool
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture(scope="function")
async def sql_store(db_engine) -> AsyncGenerator[DatabaseStorage]:
    store = DatabaseStorage(async_sessionmaker(db_engine, expire_on_commit=False))
    yield store
    await store.close()


@pytest.fixture(params=["memory", "database"])
def storage(request, sql_store):
    """Runs a test against both backends, starting from an empty store."""
    if request.param == "memory":
        return MemStorage(seed=False)
    return sql_store


@pytest.fixture(params=["memory", "database"])
async def concurrent_storage(request, tmp_path):
    """Both backends for concurrent tests; a file database gives every session its own connection."""
    if request.param == "memory":
        yield MemStorage(seed=False)
        return

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/finanzas.db")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    store = DatabaseStorage(async_sessionmaker(engine, expire_on_commit=False), engine=engine)
    yield store
    await store.close()


@pytest.fixture
def store() -> MemStorage:
    return MemStorage()


@pytest.fixture
def sessions() -> SessionStore:
    return SessionStore()


@pytest.fixture(scope="function")
async def client(store, sessions):
    app.dependency_overrides[get_storage] = lambda: store
    app.dependency_overrides[get_session_store] = lambda: sessions
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def mock_user_auth(client):
    # Helper to force a logged-in admin
    app.dependency_overrides[require_auth] = lambda: ADMIN_ID
    yield
    app.dependency_overrides.pop(require_auth, None)
