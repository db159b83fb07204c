"""
Guest sessions.

Guests get a user row, a session row and an opaque token. Tokens live in
memory only and expire after a TTL.
"""

import time
from collections.abc import Callable

from pydantic import BaseModel

from task_orchestrator.data.repository import TaskRepository
from task_orchestrator.utils.helpers import generate_id
from task_orchestrator.utils.logging import get_logger

logger = get_logger(__name__)


class GuestSession(BaseModel):
    session_token: str
    user_id: str
    session_id: str
    created_at: float
    is_new_session: bool = False


class GuestService:
    """Creates and validates guest sessions."""

    def __init__(
        self,
        repository: TaskRepository,
        ttl_seconds: float = 86400,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.repository = repository
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._sessions: dict[str, GuestSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> GuestSession:
        """Create a guest user, a session for it and a session token."""
        user = self.repository.create_guest()
        session = self.repository.create_session(user.user_id)
        guest = GuestSession(
            session_token=generate_id("guest"),
            user_id=user.user_id,
            session_id=session.session_id,
            created_at=self.clock(),
            is_new_session=True,
        )
        self._sessions[guest.session_token] = guest
        logger.info(f"Created guest session {session.session_id} for {user.user_id}")
        return guest

    def validate(self, session_token: str) -> GuestSession | None:
        """
        Look up a token.

        Returns:
            The guest session, or None if the token is unknown, expired, or
            its user no longer exists
        """
        guest = self._sessions.get(session_token)
        if guest is None:
            return None
        if self.clock() - guest.created_at > self.ttl_seconds:
            self.end(session_token)
            return None
        if self.repository.get_user(guest.user_id) is None:
            del self._sessions[session_token]
            return None
        return guest.model_copy(update={"is_new_session": False})

    def get_or_create(self, session_token: str | None = None) -> GuestSession:
        """Validate the token if given, otherwise create a new guest session."""
        if session_token:
            existing = self.validate(session_token)
            if existing is not None:
                return existing
        return self.create()

    def end(self, session_token: str) -> None:
        guest = self._sessions.pop(session_token, None)
        if guest is None:
            return
        try:
            self.repository.end_session(guest.session_id)
        except Exception as e:
            logger.error(f"Error ending guest session {guest.session_id}: {e!s}")

    def cleanup_expired(self) -> int:
        """Forget expired tokens; returns how many were removed."""
        now = self.clock()
        expired = [
            token
            for token, guest in self._sessions.items()
            if now - guest.created_at >= self.ttl_seconds
        ]
        for token in expired:
            del self._sessions[token]
        if expired:
            logger.debug(f"Cleaned up {len(expired)} expired guest sessions")
        return len(expired)
