"""Domain models."""

from .chat import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ChatMessage,
    ChatRole,
    ModelInfo,
)
from .line import (
    LineEventType,
    LineMessage,
    LineMessageType,
    LineOutgoingMessage,
    LineSource,
    LineSourceType,
    LineWebhookEvent,
)
from .session import ConversationSession

__all__ = [
    "ChatCompletionChunk",
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "ChatMessage",
    "ChatRole",
    "ModelInfo",
    "ConversationSession",
    "LineEventType",
    "LineMessage",
    "LineMessageType",
    "LineOutgoingMessage",
    "LineSource",
    "LineSourceType",
    "LineWebhookEvent",
]
