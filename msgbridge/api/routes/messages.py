"""Anthropic-compatible Messages API endpoint."""

import json
import logging
import time
import uuid
from typing import Any

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.requests import ClientDisconnect

from ...core.exceptions import UpstreamError
from ...messages import ChatToMessagesStreamAdapter, messages_to_chat_completions

logger = logging.getLogger("msgbridge")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _error_response(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse({"status": "error", "message": message}, status_code=status_code)


def _decode_payload(body: bytes, req_id: str) -> Any:
    """Parse the request body; anything unparseable becomes an empty request."""
    if not body:
        return {}
    try:
        return json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as exc:
        logger.warning(
            f"[{req_id}] Request body is not valid JSON ({exc.__class__.__name__}), treating as empty"
        )
        return {}


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Anthropic Messages API compatible endpoint."""
    # Generate request ID for log correlation
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()

    client_host = request.client.host if request.client else "unknown"
    client_port = request.client.port if request.client else "unknown"
    logger.info(
        f"[{req_id}] Messages API request from {client_host}:{client_port}, "
        f"Content-Length: {request.headers.get('content-length', 'not-set')}"
    )

    try:
        body = await request.body()
    except ClientDisconnect:
        elapsed = time.perf_counter() - start_time
        logger.warning(f"[{req_id}] ClientDisconnect after {elapsed:.3f}s while reading body")
        return Response(status_code=499)  # Client Closed Request

    payload = _decode_payload(body, req_id)

    settings = request.app.state.settings
    upstream = request.app.state.upstream

    normalized = messages_to_chat_completions(
        payload,
        supports_vision=settings.upstream.supports_vision,
        excluded_tools=settings.excluded_tools,
        max_tools=settings.max_tools,
    )

    try:
        chunks = await upstream.call(normalized, request_id=req_id)
    except UpstreamError as exc:
        logger.error(f"[{req_id}] Upstream call failed: {exc.message}")
        return _error_response(exc.message)
    except Exception as exc:
        logger.error(
            f"[{req_id}] Unexpected error before streaming: {exc.__class__.__name__}: {exc}",
            exc_info=True,
        )
        return _error_response(str(exc) or exc.__class__.__name__)

    logger.info(
        f"[{req_id}] Streaming response for model {normalized.model!r} "
        f"(upstream ready in {time.perf_counter() - start_time:.3f}s)"
    )

    adapter = ChatToMessagesStreamAdapter(
        None,
        normalized.model,
        disconnect_checker=request.is_disconnected,
        request_id=req_id,
    )
    return StreamingResponse(
        adapter.adapt_stream(chunks),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
        # Runs even when the client is gone before the first event is pulled
        background=BackgroundTask(chunks.aclose),
    )


async def health() -> dict[str, str]:
    """GET /health - liveness check."""
    return {"status": "ok"}
