import json

import httpx
import pytest

from linechat.core.exceptions import LineAPIError
from linechat.models import LineMessageType, LineOutgoingMessage
from linechat.services.line_messaging import LineMessagingClient

TOKEN = "channel-token"


def _client(handler) -> LineMessagingClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LineMessagingClient(TOKEN, base_url="https://line.test/", http_client=http_client)


@pytest.mark.asyncio
async def test_reply_message_posts_token_and_messages():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    client = _client(handler)
    await client.reply_message("rt-1", [LineOutgoingMessage.text_message("hello")])

    assert seen["url"] == "https://line.test/v2/bot/message/reply"
    assert seen["auth"] == f"Bearer {TOKEN}"
    assert seen["body"] == {
        "replyToken": "rt-1",
        "messages": [{"type": "text", "text": "hello"}],
    }


@pytest.mark.asyncio
async def test_push_message_posts_recipient():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={})

    client = _client(handler)
    sticker = LineOutgoingMessage(
        type=LineMessageType.STICKER, package_id="446", sticker_id="1988"
    )
    await client.push_message("U1", [LineOutgoingMessage.text_message("hi"), sticker])

    assert seen["path"] == "/v2/bot/message/push"
    assert seen["body"] == {
        "to": "U1",
        "messages": [
            {"type": "text", "text": "hi"},
            {"type": "sticker", "packageId": "446", "stickerId": "1988"},
        ],
    }


@pytest.mark.asyncio
async def test_error_status_raises_line_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"message": "Invalid reply token"})

    client = _client(handler)
    with pytest.raises(LineAPIError) as exc_info:
        await client.reply_message("expired", [LineOutgoingMessage.text_message("hi")])

    assert exc_info.value.status == 400
    assert "Invalid reply token" in exc_info.value.body


@pytest.mark.asyncio
async def test_transport_failure_raises_line_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    client = _client(handler)
    with pytest.raises(LineAPIError):
        await client.push_message("U1", [LineOutgoingMessage.text_message("hi")])


@pytest.mark.asyncio
async def test_unsendable_messages_are_rejected_without_a_call():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    client = _client(handler)
    image = LineOutgoingMessage(type=LineMessageType.IMAGE)
    with pytest.raises(LineAPIError):
        await client.push_message("U1", [image])

    assert calls == []


@pytest.mark.asyncio
async def test_get_profile_returns_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v2/bot/profile/U1"
        return httpx.Response(200, json={"userId": "U1", "displayName": "Alice"})

    client = _client(handler)
    profile = await client.get_profile("U1")

    assert profile["displayName"] == "Alice"
