"""Chat completion models exchanged with the LM Studio backend."""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):
    """Role of a message author in a conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """A single immutable conversation message."""

    model_config = ConfigDict(frozen=True)

    role: ChatRole = Field(..., description="Message author role")
    content: str = Field(..., description="Message text")

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role=ChatRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=ChatRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role=ChatRole.ASSISTANT, content=content)


class ChatCompletionRequest(BaseModel):
    """Request for a chat completion."""

    messages: List[ChatMessage] = Field(..., description="Ordered conversation")
    model: Optional[str] = Field(
        default=None, description="Per-request model override"
    )
    temperature: Optional[float] = Field(default=None, description="Sampling temperature")
    stream: bool = Field(default=False, description="Whether to stream the response")


class ChatCompletionResponse(BaseModel):
    """Result of a non-streaming chat completion."""

    content: str
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionChunk(BaseModel):
    """
    One unit of a streamed completion.

    A chunk with ``done`` set is terminal: nothing follows it. A terminal
    chunk carrying ``error`` means the stream ended abnormally.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    content: str = ""
    done: bool = False
    error: Optional[Exception] = None

    @classmethod
    def finished(cls) -> "ChatCompletionChunk":
        return cls(done=True)

    @classmethod
    def failed(cls, error: Exception) -> "ChatCompletionChunk":
        return cls(done=True, error=error)


class ModelInfo(BaseModel):
    """One selectable backend model."""

    id: str
    object: str = "model"
    owned_by: str = ""
