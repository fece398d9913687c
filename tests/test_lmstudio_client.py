import asyncio
import json
from typing import Any, List

import httpx
import pytest

from linechat.core.config import LMStudioConfig
from linechat.core.exceptions import (
    BackendTimeoutError,
    BackendUnavailableError,
    InvalidRequestError,
    ModelError,
    StreamCancelledError,
    StreamReadError,
)
from linechat.models import ChatCompletionRequest, ChatMessage
from linechat.services.lmstudio import (
    CachedModel,
    LMStudioClient,
    RetryPolicy,
    is_transient,
    parse_sse_line,
)

BASE_URL = "http://lmstudio.local:1234"
NO_WAIT = RetryPolicy(max_attempts=5, initial_delay=0, max_delay=0)


def _completion(content: str = "Hello!", model: str = "local-model") -> dict:
    return {
        "id": "chatcmpl-1",
        "model": model,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
    }


def _delta(content: str) -> str:
    return "data: " + json.dumps({"choices": [{"index": 0, "delta": {"content": content}}]})


def _request(**overrides: Any) -> ChatCompletionRequest:
    data: dict = {
        "messages": [ChatMessage.system("be nice"), ChatMessage.user("hi")],
    }
    data.update(overrides)
    return ChatCompletionRequest(**data)


def _client(handler, model: str = "local-model", policy: RetryPolicy = NO_WAIT, **config: Any):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LMStudioClient(
        LMStudioConfig(base_url=BASE_URL, model=model, **config),
        http_client=http_client,
        retry_policy=policy,
    )


class ScriptedStream(httpx.AsyncByteStream):
    """Response body yielding fixed chunks, then failing or hanging if asked."""

    def __init__(self, chunks: List[bytes], fail: bool = False, hang: bool = False) -> None:
        self._chunks = chunks
        self._fail = fail
        self._hang = hang
        self.closed = False

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._fail:
            raise httpx.ReadError("connection lost")
        if self._hang:
            await asyncio.Event().wait()

    async def aclose(self) -> None:
        self.closed = True


async def _collect(stream) -> list:
    return [chunk async for chunk in stream]


@pytest.mark.asyncio
async def test_complete_returns_content_and_usage():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion())

    client = _client(handler, temperature=0.3)
    response = await client.complete(_request())

    assert seen["path"] == "/v1/chat/completions"
    assert seen["body"] == {
        "model": "local-model",
        "messages": [
            {"role": "system", "content": "be nice"},
            {"role": "user", "content": "hi"},
        ],
        "stream": False,
        "temperature": 0.3,
    }
    assert response.content == "Hello!"
    assert response.model == "local-model"
    assert response.total_tokens == 7


@pytest.mark.asyncio
async def test_request_temperature_and_model_override_config():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=_completion())

    client = _client(handler, temperature=0.3)
    await client.complete(_request(model="other-model", temperature=0.9))

    assert seen["body"]["model"] == "other-model"
    assert seen["body"]["temperature"] == 0.9


@pytest.mark.asyncio
async def test_complete_retries_server_errors_until_success():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) < 3:
            return httpx.Response(503, text="loading model")
        return httpx.Response(200, json=_completion())

    client = _client(handler)
    response = await client.complete(_request())

    assert len(attempts) == 3
    assert response.content == "Hello!"


@pytest.mark.asyncio
async def test_client_error_is_not_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(400, text="bad request")

    client = _client(handler)
    with pytest.raises(InvalidRequestError) as exc_info:
        await client.complete(_request())

    assert len(attempts) == 1
    assert exc_info.value.status == 400
    assert "bad request" in exc_info.value.body


@pytest.mark.asyncio
async def test_retries_exhausted_raise_backend_unavailable():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(500, text="boom")

    client = _client(handler, policy=RetryPolicy(max_attempts=3, initial_delay=0))
    with pytest.raises(BackendUnavailableError) as exc_info:
        await client.complete(_request())

    assert len(attempts) == 3
    assert exc_info.value.attempts == 3
    assert not isinstance(exc_info.value, BackendTimeoutError)


@pytest.mark.asyncio
async def test_connection_errors_are_retried():
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        if len(attempts) == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json=_completion())

    client = _client(handler)
    response = await client.complete(_request())

    assert len(attempts) == 2
    assert response.content == "Hello!"


@pytest.mark.asyncio
async def test_timeouts_exhausted_raise_backend_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = _client(handler, policy=RetryPolicy(max_attempts=2, initial_delay=0))
    with pytest.raises(BackendTimeoutError):
        await client.complete(_request())


@pytest.mark.asyncio
async def test_cancellation_aborts_backoff_wait():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    client = _client(handler, policy=RetryPolicy(max_attempts=5, initial_delay=60))
    task = asyncio.create_task(client.complete(_request()))
    await asyncio.sleep(0.05)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_response_without_choices_is_model_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"choices": []})

    client = _client(handler)
    with pytest.raises(ModelError):
        await client.complete(_request())


@pytest.mark.asyncio
async def test_list_models_parses_catalog():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/models"
        return httpx.Response(
            200,
            json={
                "object": "list",
                "data": [
                    {"id": "qwen2.5-7b", "object": "model", "owned_by": "organization_owner"},
                    {"id": "llama-3.1-8b"},
                ],
            },
        )

    client = _client(handler)
    models = await client.list_models()

    assert [m.id for m in models] == ["qwen2.5-7b", "llama-3.1-8b"]
    assert models[0].owned_by == "organization_owner"
    assert models[1].object == "model"


@pytest.mark.asyncio
async def test_first_listed_model_is_selected_once():
    calls = {"models": 0}
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v1/models":
            calls["models"] += 1
            return httpx.Response(200, json={"data": [{"id": "first"}, {"id": "second"}]})
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json=_completion(model="first"))

    client = _client(handler, model=None)
    await client.complete(_request())
    await client.complete(_request())

    assert calls["models"] == 1
    assert [b["model"] for b in bodies] == ["first", "first"]


@pytest.mark.asyncio
async def test_configured_model_skips_listing():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path != "/v1/models"
        return httpx.Response(200, json=_completion())

    client = _client(handler, model="pinned")

    assert await client.resolve_model() == "pinned"
    assert await client.resolve_model("override") == "override"


@pytest.mark.asyncio
async def test_empty_catalog_is_unavailable():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": []})

    client = _client(handler, model=None)
    with pytest.raises(BackendUnavailableError):
        await client.resolve_model()


@pytest.mark.asyncio
async def test_cached_model_factory_runs_once_under_concurrency():
    cell = CachedModel()
    calls = []

    async def factory() -> str:
        calls.append(1)
        await asyncio.sleep(0.01)
        return "m"

    results = await asyncio.gather(*(cell.get_or_set(factory) for _ in range(10)))

    assert results == ["m"] * 10
    assert len(calls) == 1


def test_cached_model_can_be_created_outside_event_loop():
    cell = CachedModel()

    async def factory() -> str:
        return "m"

    assert asyncio.run(cell.get_or_set(factory)) == "m"
    assert asyncio.run(cell.get_or_set(factory)) == "m"


@pytest.mark.asyncio
async def test_streaming_yields_content_then_done():
    body = "\n\n".join(
        [
            ": keep-alive",
            "data: " + json.dumps({"choices": [{"delta": {"role": "assistant"}}]}),
            _delta("Hel"),
            _delta("lo"),
            "data: [DONE]",
            _delta("ignored"),
        ]
    ) + "\n\n"
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["accept"] = request.headers.get("accept")
        seen["stream"] = json.loads(request.content)["stream"]
        return httpx.Response(200, text=body)

    client = _client(handler)
    stream = await client.complete_streaming(_request(stream=True))
    chunks = await _collect(stream)
    await stream.aclose()

    assert seen == {"accept": "text/event-stream", "stream": True}
    assert [c.content for c in chunks[:-1]] == ["Hel", "lo"]
    assert chunks[-1].done and chunks[-1].error is None
    assert stream.closed


@pytest.mark.asyncio
async def test_streaming_skips_malformed_lines():
    body = f"{_delta('a')}\n\ndata: {{not json\n\n{_delta('b')}\n\ndata: [DONE]\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    client = _client(handler)
    async with await client.complete_streaming(_request()) as stream:
        chunks = await _collect(stream)

    assert [c.content for c in chunks if not c.done] == ["a", "b"]
    assert chunks[-1].done and chunks[-1].error is None


@pytest.mark.asyncio
async def test_streaming_end_of_body_without_done_marker_finishes_normally():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=f"{_delta('only')}\n\n")

    client = _client(handler)
    async with await client.complete_streaming(_request()) as stream:
        chunks = await _collect(stream)

    assert [c.content for c in chunks] == ["only", ""]
    assert chunks[-1].done and chunks[-1].error is None


@pytest.mark.asyncio
async def test_streaming_read_failure_ends_with_error_chunk():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, stream=ScriptedStream([f"{_delta('partial')}\n\n".encode()], fail=True)
        )

    client = _client(handler)
    async with await client.complete_streaming(_request()) as stream:
        chunks = await _collect(stream)

    assert chunks[0].content == "partial"
    assert chunks[-1].done
    assert isinstance(chunks[-1].error, StreamReadError)
    assert sum(1 for c in chunks if c.done) == 1


@pytest.mark.asyncio
async def test_streaming_backend_error_record_is_terminal():
    body = f"{_delta('x')}\n\n" + 'data: {"error": {"message": "model crashed"}}\n\n'

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    client = _client(handler)
    async with await client.complete_streaming(_request()) as stream:
        chunks = await _collect(stream)

    assert chunks[-1].done
    assert isinstance(chunks[-1].error, ModelError)
    assert "model crashed" in str(chunks[-1].error)


@pytest.mark.asyncio
async def test_streaming_cancellation_ends_with_cancelled_chunk():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, stream=ScriptedStream([f"{_delta('first')}\n\n".encode()], hang=True)
        )

    client = _client(handler)
    stream = await client.complete_streaming(_request())

    first = await stream.__anext__()
    await stream.aclose()
    rest = await _collect(stream)

    assert first.content == "first"
    assert len(rest) == 1
    assert rest[0].done
    assert isinstance(rest[0].error, StreamCancelledError)


@pytest.mark.asyncio
async def test_closing_before_first_read_ends_with_cancelled_chunk():
    body = ScriptedStream([f"{_delta('first')}\n\n".encode()], hang=True)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=body)

    client = _client(handler)
    stream = await client.complete_streaming(_request())
    await stream.aclose()

    chunk = await asyncio.wait_for(stream.__anext__(), timeout=1)

    assert chunk.done
    assert isinstance(chunk.error, StreamCancelledError)
    assert stream.closed
    assert body.closed
    assert await _collect(stream) == []


@pytest.mark.asyncio
async def test_streaming_buffer_applies_backpressure():
    words = [f"w{n}" for n in range(10)]
    body = "".join(f"{_delta(w)}\n\n" for w in words) + "data: [DONE]\n\n"

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    client = _client(handler, stream_buffer_size=2)
    stream = await client.complete_streaming(_request())
    await asyncio.sleep(0.05)

    assert stream._queue.qsize() == 2
    assert not stream._task.done()
    assert not stream.closed

    chunks = await _collect(stream)
    await stream.aclose()

    assert [c.content for c in chunks[:-1]] == words
    assert sum(1 for c in chunks if c.done) == 1
    assert chunks[-1].error is None


@pytest.mark.asyncio
async def test_streaming_connect_rejection_raises_before_stream():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="model not found")

    client = _client(handler)
    with pytest.raises(InvalidRequestError):
        await client.complete_streaming(_request())


def test_parse_sse_line_variants():
    assert parse_sse_line("event: message") == (None, False)
    assert parse_sse_line("data: [DONE]") == (None, True)
    assert parse_sse_line('data: {"choices": []}') == (None, False)

    chunk, done = parse_sse_line(_delta("hi"))
    assert chunk is not None and chunk.content == "hi" and not done

    with pytest.raises(ValueError):
        parse_sse_line("data: {broken")
    with pytest.raises(ValueError):
        parse_sse_line("data: [1, 2]")


def test_is_transient_classification():
    request = httpx.Request("GET", BASE_URL)

    assert is_transient(httpx.ConnectError("refused", request=request))
    assert is_transient(httpx.ReadTimeout("slow", request=request))
    assert is_transient(ConnectionResetError())
    assert is_transient(RuntimeError("dial tcp: connection refused"))
    assert not is_transient(ValueError("bad payload"))
