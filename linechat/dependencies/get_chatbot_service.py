"""Dependency injection functions for the chatbot components."""

from fastapi import Request

from linechat.repositories import MemorySessionStore
from linechat.services.chat import ChatService
from linechat.services.chatbot import ChatbotService
from linechat.services.lmstudio import LMStudioClient


def get_session_store(request: Request) -> MemorySessionStore:
    """Get the process-wide session store."""
    return request.app.state.session_store


def get_lmstudio_client(request: Request) -> LMStudioClient:
    """Get the shared LM Studio client."""
    return request.app.state.lmstudio_client


def get_chatbot_service(request: Request) -> ChatbotService:
    """Get the chatbot service wired with the LINE client, backend and store."""
    return request.app.state.chatbot_service


def get_chat_service(request: Request) -> ChatService:
    """Get the SSE chat service."""
    return request.app.state.chat_service
