import logging

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status

from finanzas.config import IS_PRODUCTION, SESSION_COOKIE_NAME, SESSION_TTL_HOURS
from finanzas.dependencies import get_session_store, get_storage, require_auth
from finanzas.models.schemas import AuthResponse, LoginRequest, RegisterRequest, UserCreate
from finanzas.security import DUMMY_HASH, hash_password, verify_password
from finanzas.services.sessions import SessionStore
from finanzas.storage.base import Storage, StorageError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _start_session(response: Response, sessions: SessionStore, user_id: int) -> None:
    token = sessions.create(user_id)
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=SESSION_TTL_HOURS * 3600,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
    )


@router.post("/login", response_model=AuthResponse)
async def login(
    credentials: LoginRequest,
    response: Response,
    storage: Storage = Depends(get_storage),
    sessions: SessionStore = Depends(get_session_store),
):
    user = await storage.get_user_by_username(credentials.username)

    # Same answer, and the same bcrypt cost, for unknown users and wrong passwords
    password_hash = user.password_hash if user else DUMMY_HASH
    if not verify_password(credentials.password, password_hash) or not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    _start_session(response, sessions, user.id)
    return {"user": user}


@router.post("/logout")
async def logout(
    response: Response,
    session_token: str | None = Cookie(None, alias=SESSION_COOKIE_NAME),
    sessions: SessionStore = Depends(get_session_store),
):
    if session_token:
        sessions.destroy(session_token)
    response.delete_cookie(SESSION_COOKIE_NAME)
    return {"status": "logged_out"}


@router.get("/me", response_model=AuthResponse)
async def get_current_user(
    user_id: int = Depends(require_auth),
    storage: Storage = Depends(get_storage),
):
    user = await storage.get_user(user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return {"user": user}


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    response: Response,
    storage: Storage = Depends(get_storage),
    sessions: SessionStore = Depends(get_session_store),
):
    if await storage.get_user_by_username(data.username):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")

    if await storage.get_user_by_email(data.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already exists")

    try:
        user = await storage.create_user(
            UserCreate(
                username=data.username,
                email=data.email,
                password_hash=hash_password(data.password),
                full_name=data.full_name,
                role="employee",
            )
        )
    except StorageError as e:
        # A concurrent registration won the unique constraint after the checks above
        if await storage.get_user_by_username(data.username):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists") from e
        if await storage.get_user_by_email(data.email):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already exists") from e
        raise
    logger.info(f"Registered user {user.id} ({user.username})")

    # Auto-login after registration
    _start_session(response, sessions, user.id)
    return {"user": user}
