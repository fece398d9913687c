"""Chat service providing SSE streaming responses from LM Studio."""

from typing import AsyncGenerator, Optional

from linechat.core.logging import setup_logger
from linechat.models.chat import ChatCompletionRequest, ChatMessage
from linechat.services.lmstudio import ChatBackendProtocol

logger = setup_logger(__name__)


class ChatService:
    """Service to stream single-prompt completions as Server-Sent Events."""

    def __init__(self, backend: ChatBackendProtocol, system_prompt: str) -> None:
        self._backend = backend
        self.system_prompt = system_prompt

    async def stream_chat(
        self, *, message: str, model: Optional[str] = None
    ) -> AsyncGenerator[str, None]:
        """
        Stream an assistant reply using Server-Sent Events (SSE).

        Args:
            message: The user's input message to respond to.
            model: Optional model override.

        Yields:
            SSE frames. Each content line is prefixed with "data: " and a
            blank line closes the frame. The final frame is "data: [DONE]"
            on success or "data: [ERROR] ..." when the stream failed.
        """
        request = ChatCompletionRequest(
            messages=[ChatMessage.system(self.system_prompt), ChatMessage.user(message)],
            model=model,
            stream=True,
        )

        try:
            stream = await self._backend.complete_streaming(request)
        except Exception as e:
            logger.error(f"Streaming failed to start: {e}")
            yield "data: [ERROR] Failed to stream chat response\n\n"
            return

        async with stream:
            async for chunk in stream:
                if chunk.done:
                    if chunk.error is not None:
                        logger.error(f"Streaming ended with error: {chunk.error}")
                        yield "data: [ERROR] Failed to stream chat response\n\n"
                    else:
                        yield "data: [DONE]\n\n"
                    break

                lines = chunk.content.splitlines()
                if lines:
                    for line in lines:
                        yield f"data: {line}\n"
                    yield "\n"
