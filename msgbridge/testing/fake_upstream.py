"""Fake OpenAI-compatible upstream ASGI app for deterministic streaming tests."""

from __future__ import annotations

import json
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Iterable, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from ..types import ChatCompletionChunk, Choice, FunctionCall, Usage


@dataclass
class UpstreamResponse:
    """A queued response to return from the fake upstream.

    Standard fields:
        status_code: HTTP status code (default 200)
        headers: Response headers
        json_body: JSON body for error (non-streaming) responses
        stream_events: Chunks (dicts), raw strings or raw bytes for the SSE body
        add_done: Add [DONE] sentinel at end of stream

    Error simulation fields:
        error_after_events: Send an error payload after N events
        error_message: Message of that error payload

    Malformed data injection:
        inject_malformed_at: Event index to replace with bad data
        malformed_data: The malformed data to inject

    Dynamic response:
        response_fn: Callable that receives the request JSON and returns UpstreamResponse
    """

    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    json_body: dict[str, Any] | None = None
    stream_events: list[Any] | None = None
    add_done: bool = True

    error_after_events: int | None = None
    error_message: str = "Simulated upstream failure"

    inject_malformed_at: int | None = None
    malformed_data: bytes | None = None

    response_fn: Callable[[Any], "UpstreamResponse"] | None = None


def _encode_sse_event(event: Any) -> bytes:
    if isinstance(event, bytes):
        return event
    if isinstance(event, str):
        data = event
    else:
        data = json.dumps(event, ensure_ascii=False)
    return f"data: {data}\n\n".encode("utf-8")


def text_chunk(content: str) -> ChatCompletionChunk:
    choice: Choice = {"index": 0, "delta": {"content": content}}
    return {"object": "chat.completion.chunk", "choices": [choice]}


def tool_call_chunk(
    name: Optional[str] = None,
    arguments: Optional[str] = None,
    *,
    index: int = 0,
) -> ChatCompletionChunk:
    function: FunctionCall = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    return {
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": {"tool_calls": [{"index": index, "function": function}]}}],
    }


def usage_chunk(prompt_tokens: int, completion_tokens: int) -> ChatCompletionChunk:
    usage: Usage = {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": prompt_tokens + completion_tokens,
    }
    return {"object": "chat.completion.chunk", "choices": [], "usage": usage}


class FakeUpstream:
    """ASGI app that replies with queued responses for /chat/completions.

    Supports:
    - Deterministic response queueing
    - Request tracking/inspection
    - Streaming chat completion chunks
    - Error statuses and in-stream error payloads
    - Malformed data injection
    """

    def __init__(
        self,
        responses: Optional[Iterable[UpstreamResponse]] = None,
        *,
        route: str = "/v1/chat/completions",
    ) -> None:
        self.app = FastAPI(title="FakeUpstream")
        self._queue: Deque[UpstreamResponse] = deque(responses or [])
        self.received: list[dict[str, Any]] = []
        self.route = route
        self.app.post(route)(self._handle_chat)

    def transport(self) -> httpx.ASGITransport:
        """Transport that routes an httpx client into this app."""
        return httpx.ASGITransport(app=self.app)

    def enqueue(self, response: UpstreamResponse) -> None:
        """Add a response to the queue."""
        self._queue.append(response)

    def clear(self) -> None:
        """Clear all queued responses and received requests."""
        self._queue.clear()
        self.received.clear()

    # -------------------------------------------------------------------------
    # Convenience methods for common response types
    # -------------------------------------------------------------------------

    def enqueue_stream(self, chunks: list[Any], **kwargs: Any) -> None:
        """Enqueue a streamed response made of the given chunks."""
        self.enqueue(UpstreamResponse(stream_events=list(chunks), **kwargs))

    def enqueue_text_stream(
        self,
        content: str,
        *,
        pieces: int = 3,
        usage: dict[str, int] | None = None,
        model: str = "fake-model",
    ) -> None:
        """Enqueue a text answer split into roughly equal deltas.

        Args:
            content: The assistant message content
            pieces: Number of content deltas
            usage: Optional final usage (prompt_tokens, completion_tokens)
            model: Model name reported in the chunks
        """
        chunks: list[Any] = [
            {
                "id": f"chatcmpl-{uuid.uuid4().hex[:8]}",
                "object": "chat.completion.chunk",
                "model": model,
                "choices": [{"index": 0, "delta": {"role": "assistant"}}],
            }
        ]
        size = max(1, -(-len(content) // max(1, pieces)))
        for start in range(0, len(content), size):
            chunks.append(text_chunk(content[start:start + size]))
        chunks.append(
            {
                "object": "chat.completion.chunk",
                "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
            }
        )
        if usage:
            chunks.append(usage_chunk(usage["prompt_tokens"], usage["completion_tokens"]))
        self.enqueue_stream(chunks)

    def enqueue_error_response(self, status_code: int, message: str, *, error_type: str = "invalid_request_error") -> None:
        """Enqueue an OpenAI-style error response."""
        body = {"error": {"type": error_type, "message": message, "code": error_type}}
        self.enqueue(UpstreamResponse(status_code=status_code, json_body=body))

    def enqueue_mid_stream_error(
        self,
        events_before_error: int,
        *,
        partial_content: str = "Partial response",
        message: str = "Simulated upstream failure",
    ) -> None:
        """Queue a stream that reports an error partway through.

        Args:
            events_before_error: Number of content events sent before the error
            partial_content: Content sent one character per event
            message: Error message of the in-stream error payload
        """
        chunks = [text_chunk(char) for char in partial_content[:events_before_error]]
        self.enqueue(
            UpstreamResponse(
                stream_events=chunks,
                error_after_events=len(chunks),
                error_message=message,
                add_done=False,
            )
        )

    # -------------------------------------------------------------------------
    # Request handling
    # -------------------------------------------------------------------------

    async def _handle_chat(self, request: Request) -> Response:
        payload: Any = None
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            payload = None

        self.received.append(
            {
                "path": request.url.path,
                "headers": dict(request.headers),
                "json": payload,
            }
        )

        if not self._queue:
            return JSONResponse(
                {"error": {"message": "No upstream responses queued"}},
                status_code=500,
            )

        response = self._queue.popleft()
        if response.response_fn is not None:
            response = response.response_fn(payload)

        if response.status_code >= 400 or response.stream_events is None:
            return Response(
                content=json.dumps(response.json_body or {}),
                status_code=response.status_code,
                headers=response.headers,
                media_type="application/json",
            )

        return StreamingResponse(
            self._stream_events(response),
            status_code=response.status_code,
            headers=response.headers,
            media_type="text/event-stream",
        )

    async def _stream_events(self, response: UpstreamResponse):
        events = response.stream_events or []

        for i, event in enumerate(events):
            if response.error_after_events is not None and i >= response.error_after_events:
                break
            if response.inject_malformed_at is not None and i == response.inject_malformed_at:
                yield response.malformed_data or b"data: {invalid json\n\n"
                continue
            yield _encode_sse_event(event)

        if response.error_after_events is not None:
            yield _encode_sse_event(
                {"error": {"type": "server_error", "message": response.error_message}}
            )
            return

        if response.add_done:
            yield b"data: [DONE]\n\n"
