"""Application configuration."""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings

from linechat.prompts.chatbot import DEFAULT_SYSTEM_PROMPT

DEFAULT_LMSTUDIO_BASE_URL = "http://localhost:1234"
DEFAULT_LMSTUDIO_TIMEOUT_SECONDS = 60
DEFAULT_SESSION_TIMEOUT_MINUTES = 30
DEFAULT_SESSION_MAX_TURNS = 10


@dataclass(frozen=True)
class LMStudioConfig:
    """Connection settings for the OpenAI-compatible LM Studio backend."""

    base_url: str = DEFAULT_LMSTUDIO_BASE_URL
    model: Optional[str] = None
    timeout_seconds: float = DEFAULT_LMSTUDIO_TIMEOUT_SECONDS
    temperature: Optional[float] = None
    stream_buffer_size: int = 100

    def __post_init__(self) -> None:
        base_url = (self.base_url or DEFAULT_LMSTUDIO_BASE_URL).rstrip("/")
        object.__setattr__(self, "base_url", base_url)
        if self.timeout_seconds <= 0:
            object.__setattr__(
                self, "timeout_seconds", DEFAULT_LMSTUDIO_TIMEOUT_SECONDS
            )
        if self.stream_buffer_size <= 0:
            raise ValueError("stream_buffer_size must be positive")


@dataclass(frozen=True)
class SessionConfig:
    """Lifetime and size bounds for conversation sessions."""

    timeout: timedelta = timedelta(minutes=DEFAULT_SESSION_TIMEOUT_MINUTES)
    max_turns: int = DEFAULT_SESSION_MAX_TURNS

    def __post_init__(self) -> None:
        if self.max_turns <= 0:
            raise ValueError("max_turns must be positive")


class Settings(BaseSettings):
    """Application settings."""

    APP_NAME: str = Field(default="LINE Chat AI", env="APP_NAME")
    PORT: int = Field(default=8000, env="PORT")

    # LINE Messaging API settings
    LINE_CHANNEL_SECRET: str = Field(default="", env="LINE_CHANNEL_SECRET")
    LINE_CHANNEL_TOKEN: str = Field(default="", env="LINE_CHANNEL_TOKEN")
    LINE_API_BASE_URL: str = Field(
        default="https://api.line.me", env="LINE_API_BASE_URL"
    )

    # LM Studio settings
    LMSTUDIO_BASE_URL: str = Field(
        default=DEFAULT_LMSTUDIO_BASE_URL, env="LMSTUDIO_BASE_URL"
    )
    LMSTUDIO_MODEL: Optional[str] = Field(default=None, env="LMSTUDIO_MODEL")
    LMSTUDIO_TIMEOUT: int = Field(
        default=DEFAULT_LMSTUDIO_TIMEOUT_SECONDS, env="LMSTUDIO_TIMEOUT"
    )  # Seconds; zero or negative falls back to the default
    LMSTUDIO_TEMPERATURE: Optional[float] = Field(
        default=None, env="LMSTUDIO_TEMPERATURE", ge=0, le=2
    )
    LMSTUDIO_SYSTEM_PROMPT: str = Field(
        default=DEFAULT_SYSTEM_PROMPT, env="LMSTUDIO_SYSTEM_PROMPT"
    )
    LMSTUDIO_STREAM_BUFFER_SIZE: int = Field(
        default=100, env="LMSTUDIO_STREAM_BUFFER_SIZE", ge=1, le=10000
    )

    # Conversation session settings
    SESSION_TIMEOUT: int = Field(
        default=DEFAULT_SESSION_TIMEOUT_MINUTES, env="SESSION_TIMEOUT", ge=0
    )  # Minutes; zero falls back to the default
    SESSION_MAX_TURNS: int = Field(
        default=DEFAULT_SESSION_MAX_TURNS, env="SESSION_MAX_TURNS", ge=0
    )  # Zero falls back to the default

    # Optional deadline for a single backend call made on behalf of a LINE user
    CHATBOT_REPLY_TIMEOUT: Optional[float] = Field(
        default=None, env="CHATBOT_REPLY_TIMEOUT", gt=0
    )

    # CORS settings
    CORS_ORIGINS: list[str] = Field(default=["*"], env="CORS_ORIGINS")

    # Environment
    ENVIRONMENT: str = Field(default="development", env="ENVIRONMENT")
    LOG_LEVEL: str = Field(default="INFO", env="LOG_LEVEL")
    LOG_TIMEZONE: Optional[str] = Field(default=None, env="LOG_TIMEZONE")
    DEBUG: bool = Field(default=True, env="DEBUG")

    class Config:
        env_file = ".env"

    def lmstudio_config(self) -> LMStudioConfig:
        """Build the immutable backend configuration."""
        return LMStudioConfig(
            base_url=self.LMSTUDIO_BASE_URL,
            model=self.LMSTUDIO_MODEL or None,
            timeout_seconds=self.LMSTUDIO_TIMEOUT,
            temperature=self.LMSTUDIO_TEMPERATURE,
            stream_buffer_size=self.LMSTUDIO_STREAM_BUFFER_SIZE,
        )

    def session_config(self) -> SessionConfig:
        """Build the immutable session configuration, applying defaults for zero values."""
        timeout_minutes = self.SESSION_TIMEOUT or DEFAULT_SESSION_TIMEOUT_MINUTES
        max_turns = self.SESSION_MAX_TURNS or DEFAULT_SESSION_MAX_TURNS
        return SessionConfig(
            timeout=timedelta(minutes=timeout_minutes), max_turns=max_turns
        )


settings = Settings()
