"""LINE webhook endpoint."""

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from linechat.core.auth import get_verified_body
from linechat.core.logging import setup_logger
from linechat.dependencies import get_chatbot_service
from linechat.schemas.line import WebhookRequest
from linechat.services.chatbot import ChatbotService

logger = setup_logger(__name__)

router = APIRouter(tags=["LINE"], prefix="/webhook")


@router.post(
    "/line",
    status_code=status.HTTP_200_OK,
    summary="Handle webhook events from the LINE Messaging API",
)
async def handle_line_webhook(
    body: bytes = Depends(get_verified_body),
    chatbot_service: ChatbotService = Depends(get_chatbot_service),
):
    """
    Receive LINE webhook events.

    The body must carry a valid `X-Line-Signature`. Supported events
    (text/sticker/image messages, follow, unfollow) are handed to the
    chatbot service; other events are ignored.

    Raises:
        HTTPException:
            - 400: Invalid signature or malformed body
            - 500: An event could not be processed
    """
    try:
        webhook_request = WebhookRequest.model_validate_json(body)
    except ValidationError as e:
        logger.error(f"Failed to parse webhook request: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"status": "error", "message": "Invalid signature or request"},
        )

    events = webhook_request.to_domain_events()

    try:
        await chatbot_service.handle_webhook(events)
    except Exception as e:
        logger.error(f"Failed to handle webhook: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"status": "error", "message": "Failed to process webhook"},
        )

    return {"status": "success"}
