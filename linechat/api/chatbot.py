"""Chatbot session administration endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status

from linechat.core.logging import setup_logger
from linechat.dependencies import get_session_store
from linechat.repositories import MemorySessionStore
from linechat.schemas.chat import DeleteSessionResponse, SessionStatsResponse

logger = setup_logger(__name__)

router = APIRouter(tags=["chatbot"], prefix="/v1/chatbot")


@router.get(
    "/sessions/stats",
    response_model=SessionStatsResponse,
    summary="Get session statistics",
)
async def get_session_stats(
    session_store: MemorySessionStore = Depends(get_session_store),
) -> SessionStatsResponse:
    """
    Get statistics about conversation sessions held in memory.

    Expired sessions are only removed when their user writes again, so they
    are counted separately.
    """
    stats = await session_store.stats()
    return SessionStatsResponse(**stats)


@router.delete(
    "/sessions/{user_id}",
    response_model=DeleteSessionResponse,
    summary="Clear a user's conversation history",
)
async def delete_session(
    user_id: str,
    session_store: MemorySessionStore = Depends(get_session_store),
) -> DeleteSessionResponse:
    """Delete a user's session; succeeds whether or not one existed."""
    try:
        await session_store.delete(user_id)
    except Exception as e:
        logger.error(f"Failed to delete session for user {user_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete session",
        )

    return DeleteSessionResponse(
        user_id=user_id, success=True, message="Conversation history cleared"
    )
