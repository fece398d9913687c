"""Request and response schemas for the chat and chatbot endpoints."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Request model for initiating a streamed chat completion."""

    message: str = Field(..., min_length=1, description="Current user message to respond to")
    model: Optional[str] = Field(
        default=None, description="Model to use instead of the server default"
    )
    stream: Literal[True] = Field(
        default=True,
        description="Whether to stream the response using Server-Sent Events. Must be `true` for this endpoint.",
    )


class ModelResponse(BaseModel):
    """One model served by the backend."""

    id: str = Field(..., description="Model identifier")
    object: str = Field(..., description="Object kind, usually 'model'")
    owned_by: str = Field(..., description="Model owner")


class ModelListResponse(BaseModel):
    """Response model for the backend model catalog."""

    models: List[ModelResponse] = Field(..., description="Available models")


class SessionStatsResponse(BaseModel):
    """Response model for conversation session statistics."""

    total: int = Field(..., description="Sessions held in memory")
    active: int = Field(..., description="Sessions that have not expired")
    expired: int = Field(..., description="Expired sessions awaiting lazy cleanup")
    timeout_seconds: float = Field(..., description="Idle time before a session expires")
    max_turns: int = Field(..., description="Turns kept per session")


class DeleteSessionResponse(BaseModel):
    """Response model for session deletion."""

    user_id: str = Field(..., description="LINE user whose session was cleared")
    success: bool = Field(..., description="Whether deletion was successful")
    message: str = Field(..., description="Result message")
