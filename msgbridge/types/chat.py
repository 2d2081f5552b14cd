"""Types for the two wire formats the bridge translates between.

Types are separated into:
- OpenAI-compatible types: the upstream chat-completion request and stream
- Messages types: the content blocks and usage reported back to the client
"""

from typing import Any
from typing_extensions import TypedDict


# =============================================================================
# OpenAI-Compatible Types
# =============================================================================


class FunctionCall(TypedDict, total=False):
    """A function call within a tool call (OpenAI format).

    Attributes:
        name: Name of the function to call. Can be None for streamed
            follow-up chunks where the name was already stated.
        arguments: JSON fragment of the arguments. Streamed chunks carry
            pieces that only parse once concatenated.
    """
    name: str | None
    arguments: str | None


class ToolCall(TypedDict, total=False):
    """A tool call in a chat response (OpenAI format).

    Attributes:
        id: Upstream identifier for this tool call.
        type: Type of tool call. Typically "function".
        function: The function to call with its arguments.
        index: Position in the tool_calls array while streaming. The bridge
            only reads the first entry of each delta and ignores this field.
    """
    id: str
    type: str
    function: FunctionCall
    index: int


class ContentPart(TypedDict, total=False):
    """A content part of a chat message (OpenAI format).

    Attributes:
        type: "text" or "image_url".
        text: Text content (for "text" type).
        image_url: {"url": ..., "detail": "auto"} (for "image_url" type).
    """
    type: str
    text: str
    image_url: dict[str, Any]


class ChatMessage(TypedDict, total=False):
    """A message in the upstream request (OpenAI format)."""
    role: str
    content: str | list[ContentPart] | None


class Delta(TypedDict, total=False):
    """A streamed delta of a choice in a chat completion (OpenAI format).

    Attributes:
        role: Role indicator, typically "assistant" for the first chunk.
        content: Incremental text content.
        tool_calls: Tool call fragments.
    """
    role: str | None
    content: str | None
    tool_calls: list[ToolCall] | None


class Choice(TypedDict, total=False):
    """A choice in a streamed chat completion chunk (OpenAI format)."""
    index: int
    delta: Delta | None
    finish_reason: str | None


class Usage(TypedDict, total=False):
    """Token usage information, usually only on the final chunk (OpenAI format)."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionChunk(TypedDict, total=False):
    """A streamed chunk of a chat completion response (OpenAI format)."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None


# =============================================================================
# Messages Types
# =============================================================================


class MessagesContentBlock(TypedDict, total=False):
    """A closed content block of an assistant message (Messages format).

    Attributes:
        type: "text" or "tool_use".
        text: Accumulated text (for "text" blocks).
        id: Synthetic tool use id, prefixed "toolu_" (for "tool_use" blocks).
        name: Tool name (for "tool_use" blocks).
        input: Last successfully parsed arguments object (for "tool_use" blocks).
    """
    type: str
    text: str
    id: str
    name: str
    input: Any


class MessagesUsage(TypedDict):
    """Token usage as reported in message_start / message_delta events."""
    input_tokens: int
    output_tokens: int
