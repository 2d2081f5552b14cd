"""Messages API translation helpers.

Provides translation from Anthropic Messages API requests to OpenAI Chat
Completions requests, and from streamed chat completion chunks back to
Messages SSE events.
"""

from .content import normalize_content_item
from .schema_sanitizer import sanitize_json, sanitize_tool_name, sanitize_tool_schema
from .stream_adapter import (
    ChatToMessagesStreamAdapter,
    ContentBlockState,
    MessageEvent,
    StreamSession,
    advance,
    finish,
    message_start,
    open_session,
)
from .translator import NormalizedRequest, messages_to_chat_completions

__all__ = [
    "messages_to_chat_completions",
    "NormalizedRequest",
    "normalize_content_item",
    "sanitize_json",
    "sanitize_tool_name",
    "sanitize_tool_schema",
    "ChatToMessagesStreamAdapter",
    "ContentBlockState",
    "MessageEvent",
    "StreamSession",
    "advance",
    "finish",
    "message_start",
    "open_session",
]
