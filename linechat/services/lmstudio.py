"""LM Studio client for the OpenAI-compatible chat completion API."""

import asyncio
import json
import socket
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
)

import httpx

from linechat.core.config import LMStudioConfig
from linechat.core.exceptions import (
    BackendTimeoutError,
    BackendUnavailableError,
    InvalidRequestError,
    ModelError,
    StreamCancelledError,
    StreamReadError,
)
from linechat.core.logging import setup_logger
from linechat.models.chat import (
    ChatCompletionChunk,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ModelInfo,
)

logger = setup_logger(__name__)

# Retry configuration
MAX_RETRY_ATTEMPTS = 30
INITIAL_RETRY_DELAY_SECONDS = 1.0
MAX_RETRY_DELAY_SECONDS = 30.0
BACKOFF_MULTIPLIER = 2

# HTTP transport configuration
CONNECT_TIMEOUT_SECONDS = 30.0
MAX_CONNECTIONS = 100
KEEPALIVE_EXPIRY_SECONDS = 90.0

SSE_DATA_PREFIX = "data:"
SSE_DONE_MARKER = "[DONE]"

TRANSIENT_ERROR_PATTERNS = (
    "connection refused",
    "connection reset",
    "no such host",
    "name or service not known",
    "network is unreachable",
    "i/o timeout",
    "timed out",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff settings for requests to the backend."""

    max_attempts: int = MAX_RETRY_ATTEMPTS
    initial_delay: float = INITIAL_RETRY_DELAY_SECONDS
    max_delay: float = MAX_RETRY_DELAY_SECONDS
    multiplier: float = BACKOFF_MULTIPLIER

    def next_delay(self, delay: float) -> float:
        return min(delay * self.multiplier, self.max_delay)


class UpstreamServerError(Exception):
    """A 5xx answer from the backend, kept as the cause of a retry."""

    def __init__(self, status: int, body: str) -> None:
        self.status = status
        self.body = body
        super().__init__(f"server error: status {status} - {body}")


def is_transient(exc: BaseException) -> bool:
    """
    Decide whether a failed attempt is worth retrying.

    Transport failures (timeouts, refused or reset connections, DNS
    failures) and 5xx answers are transient. Anything else is not.
    """
    if isinstance(exc, UpstreamServerError):
        return True
    if isinstance(
        exc,
        (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError),
    ):
        return True
    if isinstance(exc, (ConnectionError, TimeoutError, socket.gaierror)):
        return True

    message = str(exc).lower()
    return any(pattern in message for pattern in TRANSIENT_ERROR_PATTERNS)


def _is_timeout(exc: Optional[BaseException]) -> bool:
    return isinstance(exc, (httpx.TimeoutException, TimeoutError))


def parse_sse_line(line: str) -> Tuple[Optional[ChatCompletionChunk], bool]:
    """
    Parse one line of a streamed completion.

    Returns:
        Tuple of (chunk, done) where chunk is None for lines carrying no
        content (non-data fields, role-only deltas) and done is True for
        the ``[DONE]`` marker.

    Raises:
        ValueError: If the data payload is not a JSON object
    """
    if not line.startswith(SSE_DATA_PREFIX):
        # event:, id:, retry: and comment lines
        return None, False

    data = line[len(SSE_DATA_PREFIX):].strip()
    if data == SSE_DONE_MARKER:
        return None, True

    try:
        record = json.loads(data)
    except json.JSONDecodeError as e:
        raise ValueError(f"failed to parse SSE JSON: {e}") from e
    if not isinstance(record, dict):
        raise ValueError("SSE record is not a JSON object")

    error = record.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        return ChatCompletionChunk.failed(ModelError(f"backend error: {message}")), False

    choices = record.get("choices") or []
    if not choices:
        return None, False

    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    if not content:
        return None, False

    return ChatCompletionChunk(content=content), False


class ChatCompletionStream:
    """
    Handle on a streamed chat completion.

    A producer task reads the SSE body and feeds a bounded queue; iterating
    the handle consumes it. The last chunk is always terminal (``done``),
    optionally carrying an error, and iteration ends right after it. The
    producer emits that terminal chunk exactly once, whichever way the
    stream ends: ``[DONE]``, end of body, read failure or cancellation.
    """

    def __init__(
        self, response: httpx.Response, model: str = "", buffer_size: int = 100
    ) -> None:
        self.model = model
        self._response = response
        self._queue: "asyncio.Queue[ChatCompletionChunk]" = asyncio.Queue(
            maxsize=buffer_size
        )
        self._closed = False
        self._finished = False
        self._task = asyncio.create_task(self._produce())
        self._task.add_done_callback(self._on_producer_done)

    def __aiter__(self) -> "ChatCompletionStream":
        return self

    async def __anext__(self) -> ChatCompletionChunk:
        if self._finished:
            raise StopAsyncIteration
        chunk = await self._queue.get()
        if chunk.done:
            self._finished = True
        return chunk

    async def __aenter__(self) -> "ChatCompletionStream":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        """True once the terminal chunk has been queued."""
        return self._closed

    def cancel(self) -> None:
        """Ask the producer to stop; a terminal cancellation chunk follows."""
        if not self._task.done():
            self._task.cancel()

    async def aclose(self) -> None:
        """Stop production (if still running), wait for the producer and release the response."""
        self.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        if not self._closed:
            # Producer was cancelled before its first step
            self._force_terminal(ChatCompletionChunk.failed(StreamCancelledError()))
        await self._response.aclose()

    def _on_producer_done(self, task: "asyncio.Task[None]") -> None:
        if not self._closed:
            self._force_terminal(ChatCompletionChunk.failed(StreamCancelledError()))

    async def _produce(self) -> None:
        try:
            terminal = await self._read_events()
            await self._emit_terminal(terminal)
        except asyncio.CancelledError:
            logger.debug("Streaming cancelled by caller")
            self._force_terminal(ChatCompletionChunk.failed(StreamCancelledError()))
            raise
        except Exception as e:
            logger.error(f"Unexpected streaming failure: {e}", exc_info=True)
            self._force_terminal(
                ChatCompletionChunk.failed(StreamReadError(f"streaming failed: {e}"))
            )
        finally:
            await self._response.aclose()
            logger.debug("Streaming response processing completed, stream closed")

    async def _read_events(self) -> ChatCompletionChunk:
        try:
            async for line in self._response.aiter_lines():
                if not line:
                    continue

                try:
                    chunk, done = parse_sse_line(line)
                except ValueError as e:
                    logger.warning(f"Error parsing SSE line: {e}, line: {line}")
                    continue

                if done:
                    logger.debug("Received [DONE] marker, completing stream")
                    return ChatCompletionChunk.finished()
                if chunk is None:
                    continue
                if chunk.done:
                    logger.warning(f"Backend reported a streaming error: {chunk.error}")
                    return chunk

                await self._queue.put(chunk)
        except (httpx.HTTPError, httpx.StreamError) as e:
            logger.error(f"Error reading streaming response: {e}")
            return ChatCompletionChunk.failed(
                StreamReadError(f"failed to read streaming response: {e}")
            )

        # End of body without [DONE] counts as a normal completion
        logger.debug("Streaming EOF reached")
        return ChatCompletionChunk.finished()

    async def _emit_terminal(self, chunk: ChatCompletionChunk) -> None:
        if self._closed:
            return
        await self._queue.put(chunk)
        self._closed = True

    def _force_terminal(self, chunk: ChatCompletionChunk) -> None:
        """Queue a terminal chunk without waiting, discarding unread content if full."""
        if self._closed:
            return
        while self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(chunk)
        self._closed = True


class CachedModel:
    """Single-assignment cell holding the default model name."""

    def __init__(self) -> None:
        self._value: Optional[str] = None
        self._lock: Optional[asyncio.Lock] = None

    @property
    def value(self) -> Optional[str]:
        return self._value

    async def get_or_set(self, factory: Callable[[], Awaitable[str]]) -> str:
        # Fast path: already populated, no locking
        if self._value is not None:
            return self._value

        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            # Another task may have filled the cell while we waited
            if self._value is None:
                self._value = await factory()
            return self._value


class ChatBackendProtocol(Protocol):
    """Protocol for the chat completion backend."""

    async def complete(
        self, request: ChatCompletionRequest
    ) -> ChatCompletionResponse: ...

    async def complete_streaming(
        self, request: ChatCompletionRequest
    ) -> ChatCompletionStream: ...

    async def list_models(self) -> List[ModelInfo]: ...


class LMStudioClient:
    """Client for LM Studio's OpenAI-compatible REST/SSE API."""

    def __init__(
        self,
        config: LMStudioConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            config: Backend connection settings
            http_client: Optional preconfigured httpx client (closed by its owner)
            retry_policy: Backoff settings; defaults to 30 attempts, 1s doubling to 30s
        """
        self.config = config
        self.retry_policy = retry_policy or RetryPolicy()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(
                config.timeout_seconds, connect=CONNECT_TIMEOUT_SECONDS
            ),
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_CONNECTIONS,
                keepalive_expiry=KEEPALIVE_EXPIRY_SECONDS,
            ),
        )
        self._default_model = CachedModel()

        logger.info(
            f"LM Studio client initialized with base URL: {config.base_url}, "
            f"timeout: {config.timeout_seconds}s"
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.config.base_url}{path}"

    async def _send_with_retry(
        self,
        build_request: Callable[[], httpx.Request],
        *,
        stream: bool = False,
    ) -> httpx.Response:
        """
        Send a request, retrying transient failures with exponential backoff.

        Raises:
            InvalidRequestError: On a 4xx answer (no retry)
            BackendUnavailableError: When every attempt failed transiently
            asyncio.CancelledError: When the caller is cancelled, including mid-wait
        """
        policy = self.retry_policy
        delay = policy.initial_delay
        last_error: Optional[BaseException] = None

        for attempt in range(1, policy.max_attempts + 1):
            request = build_request()
            try:
                response = await self._client.send(request, stream=stream)
            except (httpx.HTTPError, OSError) as e:
                if not is_transient(e):
                    raise
                last_error = e
                logger.warning(
                    f"LM Studio request attempt {attempt}/{policy.max_attempts} "
                    f"failed with error: {e!r}, retrying in {delay}s"
                )
            else:
                status_code = response.status_code
                if 200 <= status_code < 300:
                    return response

                if 400 <= status_code < 500:
                    body = await self._drain(response)
                    logger.error(
                        f"LM Studio rejected {request.method} {request.url}: "
                        f"status {status_code} - {body}"
                    )
                    raise InvalidRequestError(status_code, body)

                if status_code >= 500:
                    body = await self._drain(response)
                    last_error = UpstreamServerError(status_code, body)
                    logger.warning(
                        f"LM Studio request attempt {attempt}/{policy.max_attempts} "
                        f"failed with status {status_code}, retrying in {delay}s"
                    )
                else:
                    return response

            if attempt < policy.max_attempts:
                await asyncio.sleep(delay)
                delay = policy.next_delay(delay)

        message = (
            f"lm studio service unavailable: {last_error} "
            f"after {policy.max_attempts} attempts"
        )
        logger.error(message)
        error_class = (
            BackendTimeoutError if _is_timeout(last_error) else BackendUnavailableError
        )
        raise error_class(message, cause=last_error, attempts=policy.max_attempts)

    @staticmethod
    async def _drain(response: httpx.Response) -> str:
        try:
            content = await response.aread()
        finally:
            await response.aclose()
        return content.decode("utf-8", errors="ignore")

    async def list_models(self) -> List[ModelInfo]:
        """Query ``/v1/models`` for the models the backend can serve."""
        url = self._url("/v1/models")
        response = await self._send_with_retry(
            lambda: self._client.build_request("GET", url)
        )

        try:
            payload = response.json()
            models = [ModelInfo.model_validate(item) for item in payload.get("data") or []]
        except (ValueError, AttributeError, TypeError) as e:
            raise ModelError(f"failed to parse models response: {e}") from e

        logger.info(f"Listed {len(models)} models from LM Studio")
        return models

    async def resolve_model(self, override: Optional[str] = None) -> str:
        """
        Pick the model for a request.

        An explicit override wins, then the configured model, then the first
        model listed by the backend. The default is resolved once and cached.
        """
        if override:
            return override
        return await self._default_model.get_or_set(self._select_default_model)

    async def _select_default_model(self) -> str:
        if self.config.model:
            logger.info(f"Using configured model: {self.config.model}")
            return self.config.model

        models = await self.list_models()
        if not models:
            raise BackendUnavailableError(
                "lm studio service unavailable: no models available"
            )

        logger.info(f"Selected first available model: {models[0].id}")
        return models[0].id

    def _build_payload(
        self, request: ChatCompletionRequest, model: str, stream: bool
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": [
                {"role": message.role.value, "content": message.content}
                for message in request.messages
            ],
            "stream": stream,
        }
        temperature = (
            request.temperature
            if request.temperature is not None
            else self.config.temperature
        )
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    async def complete(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """
        Send a non-streaming chat completion request.

        Args:
            request: Messages plus optional model override and temperature

        Returns:
            The generated content with model name and token usage

        Raises:
            InvalidRequestError: Backend rejected the request (4xx)
            BackendUnavailableError: Retries exhausted on transient failures
            ModelError: Backend answered with an unusable payload
        """
        model = await self.resolve_model(request.model)
        payload = self._build_payload(request, model, stream=False)
        url = self._url("/v1/chat/completions")

        response = await self._send_with_retry(
            lambda: self._client.build_request("POST", url, json=payload)
        )

        try:
            data = response.json()
        except ValueError as e:
            raise ModelError(f"failed to parse chat completion response: {e}") from e
        if not isinstance(data, dict):
            raise ModelError("chat completion response is not a JSON object")

        choices = data.get("choices") or []
        if not choices:
            raise ModelError("no choices in response")

        message = choices[0].get("message") or {}
        usage = data.get("usage") or {}
        result = ChatCompletionResponse(
            content=message.get("content") or "",
            model=data.get("model") or model,
            prompt_tokens=usage.get("prompt_tokens") or 0,
            completion_tokens=usage.get("completion_tokens") or 0,
            total_tokens=usage.get("total_tokens") or 0,
        )

        logger.info(
            f"Chat completion successful, model: {result.model}, "
            f"tokens: {result.total_tokens}"
        )
        return result

    async def complete_streaming(
        self, request: ChatCompletionRequest
    ) -> ChatCompletionStream:
        """
        Start a streaming chat completion.

        Only opening the connection is retried; once chunks flow, failures
        end the stream with a terminal error chunk instead.

        Returns:
            ChatCompletionStream yielding content chunks and a final terminal chunk
        """
        model = await self.resolve_model(request.model)
        payload = self._build_payload(request, model, stream=True)
        url = self._url("/v1/chat/completions")

        response = await self._send_with_retry(
            lambda: self._client.build_request(
                "POST", url, json=payload, headers={"Accept": "text/event-stream"}
            ),
            stream=True,
        )

        logger.info(f"Started streaming chat completion with model: {model}")
        return ChatCompletionStream(
            response, model=model, buffer_size=self.config.stream_buffer_size
        )
