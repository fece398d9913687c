"""LINE Messaging API client for reply, push and profile calls."""

from typing import Any, Dict, List, Optional, Protocol

import httpx

from linechat.core.exceptions import LineAPIError
from linechat.core.logging import setup_logger
from linechat.models.line import LineOutgoingMessage

logger = setup_logger(__name__)

DEFAULT_LINE_API_BASE_URL = "https://api.line.me"
LINE_API_TIMEOUT_SECONDS = 10.0


class LineClientProtocol(Protocol):
    """Protocol for sending messages to LINE users."""

    async def reply_message(
        self, reply_token: str, messages: List[LineOutgoingMessage]
    ) -> None: ...

    async def push_message(
        self, to: str, messages: List[LineOutgoingMessage]
    ) -> None: ...

    async def get_profile(self, user_id: str) -> Dict[str, Any]: ...


class LineMessagingClient:
    """Thin async client over the LINE Messaging API."""

    def __init__(
        self,
        channel_token: str,
        base_url: str = DEFAULT_LINE_API_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=LINE_API_TIMEOUT_SECONDS
        )
        self._base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {channel_token}"}

        if not channel_token:
            logger.warning("LINE channel token is empty; outgoing messages will be rejected")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def reply_message(
        self, reply_token: str, messages: List[LineOutgoingMessage]
    ) -> None:
        """Send messages through the reply token of an inbound event."""
        body = {
            "replyToken": reply_token,
            "messages": self._convert_messages(messages),
        }
        await self._post("/v2/bot/message/reply", body, action="reply message")
        logger.info(f"Successfully sent reply message with token: {reply_token}")

    async def push_message(self, to: str, messages: List[LineOutgoingMessage]) -> None:
        """Send messages directly to a user, group or room."""
        body = {"to": to, "messages": self._convert_messages(messages)}
        await self._post("/v2/bot/message/push", body, action="push message")
        logger.info(f"Successfully sent push message to: {to}")

    async def get_profile(self, user_id: str) -> Dict[str, Any]:
        """Fetch a user's display name, picture and status message."""
        try:
            response = await self._client.get(
                f"{self._base_url}/v2/bot/profile/{user_id}", headers=self._headers
            )
        except httpx.HTTPError as e:
            raise LineAPIError(f"failed to get user profile: {e}") from e

        if response.is_error:
            raise LineAPIError(
                f"failed to get user profile: status {response.status_code}",
                status=response.status_code,
                body=response.text,
            )
        return response.json()

    def _convert_messages(self, messages: List[LineOutgoingMessage]) -> List[dict]:
        converted = []
        for message in messages:
            try:
                converted.append(message.to_api())
            except ValueError as e:
                logger.error(f"Failed to convert message: {e}")

        if not converted:
            raise LineAPIError("no valid messages to send")
        return converted

    async def _post(self, path: str, body: Dict[str, Any], *, action: str) -> None:
        try:
            response = await self._client.post(
                f"{self._base_url}{path}", json=body, headers=self._headers
            )
        except httpx.HTTPError as e:
            raise LineAPIError(f"failed to send {action}: {e}") from e

        if response.is_error:
            raise LineAPIError(
                f"failed to send {action}: status {response.status_code}",
                status=response.status_code,
                body=response.text,
            )
