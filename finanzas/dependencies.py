from fastapi import Cookie, Depends, HTTPException, Request, status

from finanzas.config import SESSION_COOKIE_NAME
from finanzas.services.sessions import SessionStore, session_store
from finanzas.storage.base import Storage


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_session_store() -> SessionStore:
    return session_store


async def require_auth(
    session_token: str | None = Cookie(None, alias=SESSION_COOKIE_NAME),
    sessions: SessionStore = Depends(get_session_store),
) -> int:
    """Resolves the session cookie to the owner id used by every protected route."""
    user_id = sessions.resolve(session_token) if session_token else None
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user_id
