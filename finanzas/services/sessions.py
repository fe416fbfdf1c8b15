import secrets
from datetime import UTC, datetime, timedelta

from finanzas.config import SESSION_TTL_HOURS


class SessionStore:
    """Server-side sessions: opaque random token -> user id, with expiry."""

    def __init__(self, ttl: timedelta = timedelta(hours=SESSION_TTL_HOURS)):
        self.ttl = ttl
        self._sessions: dict[str, tuple[int, datetime]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def purge_expired(self) -> int:
        """Drops every expired session, returns how many were removed."""
        now = datetime.now(UTC)
        expired = [token for token, (_, expires_at) in self._sessions.items() if expires_at <= now]
        for token in expired:
            del self._sessions[token]
        return len(expired)

    def create(self, user_id: int) -> str:
        # Abandoned tokens are never presented again, so sweep on every login
        self.purge_expired()
        token = secrets.token_urlsafe(32)
        self._sessions[token] = (user_id, datetime.now(UTC) + self.ttl)
        return token

    def resolve(self, token: str) -> int | None:
        entry = self._sessions.get(token)
        if entry is None:
            return None

        user_id, expires_at = entry
        if expires_at <= datetime.now(UTC):
            del self._sessions[token]
            return None
        return user_id

    def destroy(self, token: str) -> None:
        self._sessions.pop(token, None)


session_store = SessionStore()
