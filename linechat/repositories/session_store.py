"""In-memory conversation session store with Protocol."""

import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

from linechat.core.config import SessionConfig
from linechat.core.exceptions import StorageError
from linechat.core.logging import setup_logger
from linechat.models.session import ConversationSession, utcnow

logger = setup_logger(__name__)


class SessionStoreProtocol(Protocol):
    """Protocol for conversation session storage."""

    def new_session(self, user_id: str) -> ConversationSession: ...

    async def get(self, user_id: str) -> Optional[ConversationSession]: ...

    async def put(self, session: ConversationSession) -> None: ...

    async def delete(self, user_id: str) -> None: ...


class MemorySessionStore:
    """
    Session store keeping every conversation in process memory.

    Sessions are lost on restart. Expired sessions are removed lazily, the
    next time somebody asks for them. The lock only guards the dictionary
    access itself, so callers for different users never wait on each other
    for longer than a single lookup.
    """

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config or SessionConfig()
        self._clock = clock
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = threading.Lock()

    def new_session(self, user_id: str) -> ConversationSession:
        """Create an empty session using the configured timeout and turn limit."""
        return ConversationSession(
            user_id=user_id,
            timeout=self.config.timeout,
            max_turns=self.config.max_turns,
            last_access_time=self._clock(),
        )

    async def get(self, user_id: str) -> Optional[ConversationSession]:
        """
        Get a live session for a user.

        Returns None when the session does not exist or has expired; an
        expired session is deleted as a side effect. The access time of a
        live session is refreshed.
        """
        now = self._clock()
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                return None

            if not isinstance(session, ConversationSession):
                logger.warning(f"Dropping malformed session entry for user {user_id}")
                del self._sessions[user_id]
                return None

            if session.is_expired(now):
                del self._sessions[user_id]
                logger.debug(f"Session expired for user {user_id}")
                return None

            session.last_access_time = now
            return session

    async def put(self, session: ConversationSession) -> None:
        """Create or replace the session for ``session.user_id``."""
        if not isinstance(session, ConversationSession) or not session.user_id:
            raise StorageError("cannot store a session without a user id")

        now = self._clock()
        with self._lock:
            session.last_access_time = now
            self._sessions[session.user_id] = session
        logger.debug(
            f"Stored session for user {session.user_id} "
            f"({len(session.messages)} messages)"
        )

    async def delete(self, user_id: str) -> None:
        """Remove a user's session; deleting a missing session is not an error."""
        with self._lock:
            removed = self._sessions.pop(user_id, None)
        if removed is not None:
            logger.info(f"Deleted session for user {user_id}")

    async def stats(self) -> Dict[str, Any]:
        """Count stored sessions and how many of them are still live."""
        now = self._clock()
        with self._lock:
            sessions = list(self._sessions.values())
        active = sum(1 for session in sessions if not session.is_expired(now))
        return {
            "total": len(sessions),
            "active": active,
            "expired": len(sessions) - active,
            "timeout_seconds": self.config.timeout.total_seconds(),
            "max_turns": self.config.max_turns,
        }
