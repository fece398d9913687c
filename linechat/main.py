"""Main FastAPI application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from linechat.api import chat, chatbot, health, line_webhook
from linechat.core.config import settings
from linechat.core.logging import setup_logger
from linechat.repositories import MemorySessionStore
from linechat.services.chat import ChatService
from linechat.services.chatbot import ChatbotService
from linechat.services.line_messaging import LineMessagingClient
from linechat.services.lmstudio import LMStudioClient


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    # Startup
    logger = setup_logger(__name__)
    logger.info(f"Starting LINE Chat AI Application, version={app.version}")

    if not settings.LINE_CHANNEL_SECRET or not settings.LINE_CHANNEL_TOKEN:
        logger.warning("LINE channel secret or token is not configured")

    session_store = MemorySessionStore(settings.session_config())
    lmstudio_client = LMStudioClient(settings.lmstudio_config())
    line_client = LineMessagingClient(
        settings.LINE_CHANNEL_TOKEN, base_url=settings.LINE_API_BASE_URL
    )

    app.state.session_store = session_store
    app.state.lmstudio_client = lmstudio_client
    app.state.line_client = line_client
    app.state.chatbot_service = ChatbotService(
        line_client=line_client,
        backend=lmstudio_client,
        session_store=session_store,
        system_prompt=settings.LMSTUDIO_SYSTEM_PROMPT,
        reply_timeout=settings.CHATBOT_REPLY_TIMEOUT,
    )
    app.state.chat_service = ChatService(
        backend=lmstudio_client, system_prompt=settings.LMSTUDIO_SYSTEM_PROMPT
    )
    logger.info(
        f"LM Studio backend at {lmstudio_client.config.base_url}, "
        f"model={lmstudio_client.config.model or 'auto'}"
    )

    yield

    # Shutdown
    logger.info("Shutting down LINE Chat AI Application")
    await line_client.aclose()
    await lmstudio_client.aclose()


def create_application() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        description="LINE chatbot backed by a local LM Studio model",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc" if settings.DEBUG else None,
        servers=[
            {
                "url": f"http://localhost:{settings.PORT}",
                "description": "Local Enviroment",
            }
        ],
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include API router
    app.include_router(health.router)
    app.include_router(line_webhook.router)
    app.include_router(chat.router)
    app.include_router(chatbot.router)

    return app


app = create_application()
