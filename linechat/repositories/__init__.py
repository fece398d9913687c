"""Repository classes for conversation state."""

from .session_store import MemorySessionStore, SessionStoreProtocol

__all__ = [
    "MemorySessionStore",
    "SessionStoreProtocol",
]
