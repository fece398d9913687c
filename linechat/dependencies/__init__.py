"""FastAPI dependency injection functions."""

from .get_chatbot_service import (
    get_chat_service,
    get_chatbot_service,
    get_lmstudio_client,
    get_session_store,
)

__all__ = [
    "get_chat_service",
    "get_chatbot_service",
    "get_lmstudio_client",
    "get_session_store",
]
