"""Upstream chat-completion clients.

Two strategies share one contract: ``call`` sends a translated request and
returns an ``UpstreamStream`` of decoded chunks, or raises ``UpstreamError``
before any chunk is handed out. The strategy is picked once from settings
by ``build_upstream_client``.

- ``HTTPUpstreamClient`` posts with httpx and decodes the SSE body itself.
- ``OpenAISDKUpstreamClient`` goes through the ``openai`` SDK stream.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

import httpx
import openai

from ..types import ChatCompletionChunk
from .exceptions import UpstreamError
from .sse import iter_sse_json

if TYPE_CHECKING:
    from ..config_loader import UpstreamSettings
    from ..messages.translator import NormalizedRequest

logger = logging.getLogger("msgbridge")

MAX_ERROR_BODY_LOG = 500


def format_httpx_error(exc: Any, timeout: Optional[float] = None, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        # httpx raises RuntimeError when the error was built without a request
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException) and timeout:
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


def build_upstream_headers(
    api_key: str,
    extra_headers: Optional[Mapping[str, str]] = None,
    vision_header: Optional[str] = None,
) -> dict[str, str]:
    """Build headers for a chat-completion request.

    ``vision_header``, when given, is sent with the value "true".
    """
    headers = {
        "Content-Type": "application/json",
        "Accept": "text/event-stream",
    }
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    for key, value in (extra_headers or {}).items():
        headers[key] = value
    if vision_header:
        headers[vision_header] = "true"
    return headers


class UpstreamStream:
    """A single-use async iterator over decoded chat-completion chunks.

    ``prime`` pulls the first chunk ahead of time so failures that happen
    before any data arrives surface from ``call`` instead of mid-stream.
    ``aclose`` is idempotent and releases the underlying response.
    """

    def __init__(
        self,
        chunks: AsyncIterator[ChatCompletionChunk],
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self._chunks = chunks
        self._on_close = on_close
        self._pending: list[ChatCompletionChunk] = []
        self._exhausted = False
        self.closed = False

    async def prime(self) -> None:
        try:
            first = await self._chunks.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            return
        self._pending.append(first)

    def __aiter__(self) -> "UpstreamStream":
        return self

    async def __anext__(self) -> ChatCompletionChunk:
        if self._pending:
            return self._pending.pop(0)
        if self._exhausted or self.closed:
            raise StopAsyncIteration
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            raise

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._pending.clear()
        try:
            aclose = getattr(self._chunks, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self._on_close is not None:
                await self._on_close()


class UpstreamClient(abc.ABC):
    """Sends translated requests to the chat-completion provider."""

    def __init__(self, settings: "UpstreamSettings") -> None:
        self.settings = settings

    def upstream_model(self, request: "NormalizedRequest") -> Any:
        return self.settings.target_model or request.model

    def vision_header_for(self, request: "NormalizedRequest") -> Optional[str]:
        if request.has_images and self.settings.supports_vision:
            return self.settings.vision_header
        return None

    @abc.abstractmethod
    async def call(self, request: "NormalizedRequest", request_id: str = "-") -> UpstreamStream:
        """Start a streaming completion.

        Raises:
            UpstreamError: The call failed before the first chunk
        """

    async def aclose(self) -> None:
        """Release pooled connections."""


class HTTPUpstreamClient(UpstreamClient):
    """Posts to ``{api_base}/chat/completions`` and decodes the SSE body."""

    def __init__(
        self,
        settings: "UpstreamSettings",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(settings)
        self.url = f"{settings.api_base.rstrip('/')}/chat/completions"
        client_kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(settings.timeout),
            "follow_redirects": True,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        elif settings.proxy_url:
            client_kwargs["proxy"] = settings.proxy_url
        self._client = httpx.AsyncClient(**client_kwargs)

    async def call(self, request: "NormalizedRequest", request_id: str = "-") -> UpstreamStream:
        payload = request.to_payload(model=self.upstream_model(request))
        headers = build_upstream_headers(
            self.settings.api_key,
            self.settings.extra_headers,
            self.vision_header_for(request),
        )
        http_request = self._client.build_request("POST", self.url, headers=headers, json=payload)

        logger.debug(f"[{request_id}] Sending streaming request to {self.url} (model={payload['model']})")
        try:
            resp = await self._client.send(http_request, stream=True)
        except httpx.HTTPError as exc:
            detail = format_httpx_error(exc, self.settings.timeout, self.url)
            logger.error(f"[{request_id}] Failed to send streaming request: {detail}")
            raise UpstreamError(f"Upstream request failed: {detail}") from exc

        if resp.status_code >= 400:
            data = await resp.aread()
            await resp.aclose()
            body = data.decode("utf-8", errors="replace")
            logger.warning(
                f"[{request_id}] Upstream returned error status {resp.status_code}: "
                f"{body[:MAX_ERROR_BODY_LOG]}"
            )
            raise UpstreamError(
                f"Upstream returned status {resp.status_code}: {body}",
                status_code=resp.status_code,
                body=body,
            )

        stream = UpstreamStream(iter_sse_json(resp.aiter_lines()), on_close=resp.aclose)
        try:
            await stream.prime()
        except UpstreamError as exc:
            await stream.aclose()
            logger.warning(f"[{request_id}] Upstream stream reported an error: {exc.message}")
            raise
        except httpx.HTTPError as exc:
            await stream.aclose()
            detail = format_httpx_error(exc, self.settings.timeout, self.url)
            logger.error(f"[{request_id}] Upstream stream failed before first chunk: {detail}")
            raise UpstreamError(f"Upstream stream failed: {detail}") from exc
        return stream

    async def aclose(self) -> None:
        await self._client.aclose()


class OpenAISDKUpstreamClient(UpstreamClient):
    """Streams through ``openai.AsyncOpenAI``.

    The SDK gets its own httpx client so the outbound proxy (or a test
    transport) applies to it too.
    """

    def __init__(
        self,
        settings: "UpstreamSettings",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(settings)
        http_kwargs: dict[str, Any] = {"timeout": httpx.Timeout(settings.timeout)}
        if transport is not None:
            http_kwargs["transport"] = transport
        elif settings.proxy_url:
            http_kwargs["proxy"] = settings.proxy_url
        self._http_client = httpx.AsyncClient(**http_kwargs)
        self._client = openai.AsyncOpenAI(
            api_key=settings.api_key or "missing",
            base_url=settings.api_base or None,
            timeout=settings.timeout,
            default_headers=dict(settings.extra_headers),
            http_client=self._http_client,
        )

    async def call(self, request: "NormalizedRequest", request_id: str = "-") -> UpstreamStream:
        payload = request.to_payload(model=self.upstream_model(request))
        vision_header = self.vision_header_for(request)
        extra_headers = {vision_header: "true"} if vision_header else None

        logger.debug(f"[{request_id}] Sending SDK streaming request (model={payload['model']})")
        try:
            sdk_stream = await self._client.chat.completions.create(
                **payload, extra_headers=extra_headers
            )
        except openai.APIStatusError as exc:
            body = exc.response.text
            logger.warning(
                f"[{request_id}] Upstream returned error status {exc.status_code}: "
                f"{body[:MAX_ERROR_BODY_LOG]}"
            )
            raise UpstreamError(
                f"Upstream returned status {exc.status_code}: {body}",
                status_code=exc.status_code,
                body=body,
            ) from exc
        except openai.APIError as exc:
            logger.error(f"[{request_id}] Failed to send streaming request: {exc.__class__.__name__}: {exc}")
            raise UpstreamError(f"Upstream request failed: {exc.__class__.__name__}: {exc}") from exc

        stream = UpstreamStream(_iter_sdk_chunks(sdk_stream), on_close=sdk_stream.close)
        try:
            await stream.prime()
        except openai.APIError as exc:
            await stream.aclose()
            logger.error(f"[{request_id}] Upstream stream failed before first chunk: {exc}")
            raise UpstreamError(f"Upstream stream failed: {exc.__class__.__name__}: {exc}") from exc
        return stream

    async def aclose(self) -> None:
        await self._client.close()


async def _iter_sdk_chunks(sdk_stream: Any) -> AsyncIterator[ChatCompletionChunk]:
    async for chunk in sdk_stream:
        yield chunk.model_dump(exclude_none=True)


def build_upstream_client(
    settings: "UpstreamSettings",
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> UpstreamClient:
    """Create the upstream client selected by ``settings.mode``."""
    if settings.mode == "sdk":
        logger.info(f"Using OpenAI SDK upstream client (base={settings.api_base or 'default'})")
        return OpenAISDKUpstreamClient(settings, transport=transport)
    logger.info(f"Using HTTP upstream client (base={settings.api_base})")
    return HTTPUpstreamClient(settings, transport=transport)
