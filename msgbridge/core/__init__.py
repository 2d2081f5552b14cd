"""Core module initialization."""

from .exceptions import BridgeError, ConfigurationError, UpstreamError
from .sse import SSE_DONE, decode_data_line, extract_stream_error, format_sse_event, iter_sse_json
from .upstream import (
    HTTPUpstreamClient,
    OpenAISDKUpstreamClient,
    UpstreamClient,
    UpstreamStream,
    build_upstream_client,
    build_upstream_headers,
    format_httpx_error,
)

__all__ = [
    "BridgeError",
    "ConfigurationError",
    "HTTPUpstreamClient",
    "OpenAISDKUpstreamClient",
    "SSE_DONE",
    "UpstreamClient",
    "UpstreamError",
    "UpstreamStream",
    "build_upstream_client",
    "build_upstream_headers",
    "decode_data_line",
    "extract_stream_error",
    "format_httpx_error",
    "format_sse_event",
    "iter_sse_json",
]
