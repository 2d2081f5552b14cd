"""Testing utilities for the bridge."""

from .fake_upstream import (
    FakeUpstream,
    UpstreamResponse,
    text_chunk,
    tool_call_chunk,
    usage_chunk,
)

__all__ = [
    "FakeUpstream",
    "UpstreamResponse",
    "text_chunk",
    "tool_call_chunk",
    "usage_chunk",
]
