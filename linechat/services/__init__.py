"""Business logic services."""

from .chat import ChatService
from .chatbot import ChatbotService
from .line_messaging import LineMessagingClient
from .lmstudio import ChatCompletionStream, LMStudioClient, RetryPolicy
from .text_splitter import message_splitter

__all__ = [
    "ChatService",
    "ChatbotService",
    "ChatCompletionStream",
    "LineMessagingClient",
    "LMStudioClient",
    "RetryPolicy",
    "message_splitter",
]
