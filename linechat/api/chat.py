"""SSE Chat and model catalog API endpoints."""

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse

from linechat.core.exceptions import LineChatException
from linechat.core.logging import setup_logger
from linechat.dependencies import get_chat_service, get_lmstudio_client
from linechat.schemas.chat import ChatRequest, ModelListResponse, ModelResponse
from linechat.services.chat import ChatService
from linechat.services.lmstudio import LMStudioClient

logger = setup_logger(__name__)

router = APIRouter(tags=["chat"], prefix="/v1")


@router.post(
    "/chat/stream",
    status_code=status.HTTP_200_OK,
    summary="Stream chat completion via Server-Sent Events",
)
async def stream_chat(
    request: ChatRequest,
    chat_service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """
    Stream chat completion using Server-Sent Events (SSE).

    This endpoint:
    1. Accepts a user message (no conversation history is kept)
    2. Streams model output as SSE where each chunk is sent as a line prefixed with `data: `
    3. Emits a final `data: [DONE]` event to signal completion

    Errors during streaming are sent within the SSE stream as `data: [ERROR] ...`.
    """
    generator = chat_service.stream_chat(message=request.message, model=request.model)
    return StreamingResponse(generator, media_type="text/event-stream")


@router.get(
    "/models",
    response_model=ModelListResponse,
    summary="List the models served by the LM Studio backend",
)
async def list_models(
    lmstudio_client: LMStudioClient = Depends(get_lmstudio_client),
) -> ModelListResponse:
    """Return the backend model catalog."""
    try:
        models = await lmstudio_client.list_models()
    except LineChatException as e:
        logger.error(f"Failed to list models: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="LM Studio backend is unavailable",
        )

    return ModelListResponse(
        models=[
            ModelResponse(id=model.id, object=model.object, owned_by=model.owned_by)
            for model in models
        ]
    )
