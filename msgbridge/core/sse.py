"""SSE (Server-Sent Events) framing, data-line decoding and error detection."""

import json
import logging
from typing import Any, AsyncIterator, Mapping, Optional

from .exceptions import UpstreamError

logger = logging.getLogger("msgbridge")

DONE_MARKER = "[DONE]"


class _Done:
    """Sentinel returned for the `[DONE]` data line."""

    def __repr__(self) -> str:
        return "SSE_DONE"


SSE_DONE = _Done()


def format_sse_event(event_type: str, data: Mapping[str, Any]) -> bytes:
    """Format one named SSE event.

    Args:
        event_type: Event type name
        data: Event data, serialized as JSON

    Returns:
        SSE formatted bytes
    """
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")


def decode_data_line(line: str) -> Any:
    """Decode a single line of an SSE body.

    Returns the parsed JSON payload of a `data:` line, `SSE_DONE` for the
    terminating `[DONE]` marker, or None for lines that carry nothing
    (blank lines, comments, `event:`/`id:` fields, malformed JSON).
    """
    line = line.strip()
    if not line.startswith("data:"):
        return None

    data_str = line[5:].strip()
    if not data_str:
        return None
    if data_str == DONE_MARKER:
        return SSE_DONE

    try:
        return json.loads(data_str)
    except (json.JSONDecodeError, RecursionError) as exc:
        logger.warning(f"Skipping malformed SSE data line ({exc}): {data_str[:200]}")
        return None


def extract_stream_error(payload: Any) -> Optional[str]:
    """Return an error message if a decoded SSE payload is an error event.

    Detects patterns like:
    - MiniMax: {"type":"error","error":{...}}
    - Generic: {"error":{...}}
    """
    if not isinstance(payload, dict):
        return None

    if payload.get("type") == "error":
        error_obj = payload.get("error") or {}
        if isinstance(error_obj, dict):
            error_msg = error_obj.get("message") or str(error_obj)
            http_code = error_obj.get("http_code", "unknown")
        else:
            error_msg = str(error_obj) or "unknown error"
            http_code = "unknown"
        return f"SSE stream error: {error_msg} (http_code={http_code})"

    error_obj = payload.get("error")
    if isinstance(error_obj, dict):
        error_msg = error_obj.get("message") or str(error_obj)
        error_type = error_obj.get("type", "unknown")
        return f"SSE stream error: {error_msg} (type={error_type})"

    return None


async def iter_sse_json(lines: AsyncIterator[str]) -> AsyncIterator[dict[str, Any]]:
    """Yield the JSON chunks of an SSE body, line by line.

    Stops at `[DONE]` (which is not yielded) or when the body ends. Lines
    that are not JSON objects are skipped; error events raise UpstreamError.
    """
    async for line in lines:
        payload = decode_data_line(line)
        if payload is None:
            continue
        if payload is SSE_DONE:
            return
        error = extract_stream_error(payload)
        if error:
            raise UpstreamError(error)
        if not isinstance(payload, dict):
            logger.warning(f"Skipping non-object SSE payload: {payload!r}")
            continue
        yield payload
