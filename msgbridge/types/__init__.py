"""Type definitions for the bridge."""

from .chat import (
    ChatCompletionChunk,
    ChatMessage,
    Choice,
    ContentPart,
    Delta,
    FunctionCall,
    MessagesContentBlock,
    MessagesUsage,
    ToolCall,
    Usage,
)

__all__ = [
    "ChatCompletionChunk",
    "ChatMessage",
    "Choice",
    "ContentPart",
    "Delta",
    "FunctionCall",
    "MessagesContentBlock",
    "MessagesUsage",
    "ToolCall",
    "Usage",
]
