"""Stream adapter for converting OpenAI Chat Completions chunks to Messages SSE.

The translation is a small state machine over an immutable StreamSession.
``advance`` consumes one upstream chunk and returns the next session together
with the events it produced; ``finish`` closes the response. The async
``ChatToMessagesStreamAdapter`` only drives those functions over a live chunk
iterator, so the state machine can be exercised without a network stream.

OpenAI Chat Completion chunks (already decoded from SSE):
    {"choices":[{"delta":{"content":"Hello"},"index":0}]}
    {"choices":[{"delta":{"tool_calls":[{"function":{"name":"lookup","arguments":"{\\"q\\":"}}]}}]}

Messages Events:
    event: message_start
    data: {"type":"message_start","message":{...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":""}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"end_turn","stop_sequence":null,"content":[...]},"usage":{...}}

    event: message_stop
    data: {"type":"message_stop"}

Only the first entry of a delta's ``tool_calls`` is read and the upstream's
per-call ``index`` is ignored: fragments of concurrent tool calls accumulate
into the single open tool_use block.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Awaitable, Callable, Mapping, Optional

from ..core.sse import format_sse_event
from ..types import ChatCompletionChunk, Delta, MessagesContentBlock, MessagesUsage, ToolCall

logger = logging.getLogger("msgbridge")

TEXT = "text"
TOOL_USE = "tool_use"


def new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:24]}"


def new_tool_use_id() -> str:
    return f"toolu_{uuid.uuid4().hex[:24]}"


@dataclass(frozen=True)
class MessageEvent:
    """One named Messages SSE event."""

    name: str
    data: dict[str, Any] = field(default_factory=dict)

    def encode(self) -> bytes:
        return format_sse_event(self.name, self.data)


@dataclass(frozen=True)
class ContentBlockState:
    """Accumulated state of one content block.

    ``input`` holds the last successful parse of ``json_text``; None means
    nothing has parsed yet.
    """

    index: int
    kind: str
    text: str = ""
    json_text: str = ""
    input: Any = None
    tool_id: str = ""
    name: str = ""

    def to_content_block(self) -> MessagesContentBlock:
        if self.kind == TEXT:
            return {"type": TEXT, "text": self.text}
        return {
            "type": TOOL_USE,
            "id": self.tool_id,
            "name": self.name,
            "input": self.input if self.input is not None else {},
        }


@dataclass(frozen=True)
class StreamSession:
    """Working state of one response translation.

    Attributes:
        message_id: Id reported in message_start
        model: Requested model name reported in message_start
        blocks: Every block opened so far, in index order
        index: Index of the current (or next) block
        open_kind: Kind of the block accepting deltas, None if none is open
        input_tokens: Prompt tokens reported by the upstream, if any
        output_tokens: Completion tokens reported by the upstream, if any
    """

    message_id: str
    model: Any
    blocks: tuple[ContentBlockState, ...] = ()
    index: int = 0
    open_kind: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def usage(self) -> MessagesUsage:
        return {"input_tokens": self.input_tokens, "output_tokens": self.output_tokens}


def open_session(message_id: Optional[str] = None, model: Any = None) -> StreamSession:
    """Create the state for a new response."""
    return StreamSession(message_id=message_id or new_message_id(), model=model)


def message_start(session: StreamSession) -> MessageEvent:
    message = {
        "id": session.message_id,
        "type": "message",
        "role": "assistant",
        "content": [],
        "model": session.model,
        "stop_reason": None,
        "stop_sequence": None,
        "usage": session.usage,
    }
    return MessageEvent("message_start", {"type": "message_start", "message": message})


def _content_block_start(index: int, content_block: dict[str, Any]) -> MessageEvent:
    return MessageEvent(
        "content_block_start",
        {"type": "content_block_start", "index": index, "content_block": content_block},
    )


def _content_block_delta(index: int, delta: dict[str, Any]) -> MessageEvent:
    return MessageEvent(
        "content_block_delta",
        {"type": "content_block_delta", "index": index, "delta": delta},
    )


def _content_block_stop(index: int) -> MessageEvent:
    return MessageEvent("content_block_stop", {"type": "content_block_stop", "index": index})


def _extract_delta(chunk: Any) -> Optional[Delta]:
    if not isinstance(chunk, Mapping):
        return None
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, Mapping):
        return None
    delta = choice.get("delta")
    return delta if isinstance(delta, Mapping) else None


def _record_usage(session: StreamSession, chunk: Any) -> StreamSession:
    usage = chunk.get("usage") if isinstance(chunk, Mapping) else None
    if not isinstance(usage, Mapping):
        return session
    prompt_tokens = usage.get("prompt_tokens")
    completion_tokens = usage.get("completion_tokens")
    return replace(
        session,
        input_tokens=prompt_tokens if isinstance(prompt_tokens, int) else session.input_tokens,
        output_tokens=completion_tokens if isinstance(completion_tokens, int) else session.output_tokens,
    )


def _update_open_block(session: StreamSession, block: ContentBlockState) -> StreamSession:
    return replace(session, blocks=session.blocks[:-1] + (block,))


def _close_open_block(session: StreamSession, events: list[MessageEvent]) -> StreamSession:
    events.append(_content_block_stop(session.index))
    return replace(session, index=session.index + 1, open_kind=None)


def _on_tool_call(
    session: StreamSession,
    tool_call: ToolCall,
    events: list[MessageEvent],
) -> StreamSession:
    function = tool_call.get("function") if isinstance(tool_call, Mapping) else None
    if not isinstance(function, Mapping):
        function = {}

    if session.open_kind == TEXT:
        session = _close_open_block(session, events)

    if session.open_kind != TOOL_USE:
        name = function.get("name")
        block = ContentBlockState(
            index=session.index,
            kind=TOOL_USE,
            tool_id=new_tool_use_id(),
            name=name if isinstance(name, str) else "",
        )
        session = replace(session, blocks=session.blocks + (block,), open_kind=TOOL_USE)
        events.append(
            _content_block_start(
                block.index,
                {"type": TOOL_USE, "id": block.tool_id, "name": block.name, "input": {}},
            )
        )

    arguments = function.get("arguments")
    if isinstance(arguments, str) and arguments:
        block = session.blocks[-1]
        json_text = block.json_text + arguments
        events.append(
            _content_block_delta(block.index, {"type": "input_json_delta", "partial_json": arguments})
        )
        try:
            block = replace(block, json_text=json_text, input=json.loads(json_text))
        except json.JSONDecodeError:
            # Not complete yet; keep accumulating.
            block = replace(block, json_text=json_text)
        session = _update_open_block(session, block)

    return session


def _on_text(session: StreamSession, text: str, events: list[MessageEvent]) -> StreamSession:
    if session.open_kind == TOOL_USE:
        session = _close_open_block(session, events)

    if session.open_kind != TEXT:
        block = ContentBlockState(index=session.index, kind=TEXT)
        session = replace(session, blocks=session.blocks + (block,), open_kind=TEXT)
        events.append(_content_block_start(block.index, {"type": TEXT, "text": ""}))

    block = session.blocks[-1]
    session = _update_open_block(session, replace(block, text=block.text + text))
    events.append(_content_block_delta(block.index, {"type": "text_delta", "text": text}))
    return session


def advance(session: StreamSession, chunk: ChatCompletionChunk) -> tuple[StreamSession, list[MessageEvent]]:
    """Apply one upstream chunk.

    Args:
        session: Current state
        chunk: Decoded chat completion chunk

    Returns:
        The next state and the events to emit, in order
    """
    events: list[MessageEvent] = []
    session = _record_usage(session, chunk)
    delta = _extract_delta(chunk)
    if delta is None:
        return session, events

    tool_calls = delta.get("tool_calls")
    if isinstance(tool_calls, list) and tool_calls:
        return _on_tool_call(session, tool_calls[0], events), events

    content = delta.get("content")
    if isinstance(content, str) and content:
        return _on_text(session, content, events), events

    return session, events


def finish(session: StreamSession) -> list[MessageEvent]:
    """Build the terminal events once the upstream ends cleanly.

    A content_block_stop is always sent for the current index, even when no
    block was ever opened.
    """
    stop_reason = "tool_use" if session.open_kind == TOOL_USE else "end_turn"
    message_delta = {
        "type": "message_delta",
        "delta": {
            "stop_reason": stop_reason,
            "stop_sequence": None,
            "content": [block.to_content_block() for block in session.blocks],
        },
        "usage": session.usage,
    }
    return [
        _content_block_stop(session.index),
        MessageEvent("message_delta", message_delta),
        MessageEvent("message_stop", {"type": "message_stop"}),
    ]


class ChatToMessagesStreamAdapter:
    """Drives the translation over a live upstream chunk iterator.

    The adapter is an async generator: the ASGI server awaits each write
    before asking for the next event, so upstream chunks are only pulled as
    fast as the client reads.
    """

    def __init__(
        self,
        message_id: Optional[str],
        model: Any,
        *,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None,
        request_id: str = "-",
    ):
        """Initialize the stream adapter.

        Args:
            message_id: The message ID to use (e.g., "msg_xxx"); generated if None
            model: Requested model name for the response
            disconnect_checker: Awaited after each chunk; True stops the stream
            request_id: Prefix for log lines
        """
        self.session = open_session(message_id, model)
        self.disconnect_checker = disconnect_checker
        self.request_id = request_id
        self.completed = False

    async def iter_events(self, chunks: AsyncIterator[ChatCompletionChunk]) -> AsyncIterator[MessageEvent]:
        """Yield the Messages events for an upstream chunk iterator.

        The chunk iterator is closed on every exit path. An upstream failure
        after message_start ends the stream without terminal events.
        """
        yield message_start(self.session)
        try:
            async for chunk in chunks:
                self.session, events = advance(self.session, chunk)
                for event in events:
                    yield event
                if self.disconnect_checker is not None and await self.disconnect_checker():
                    logger.info(
                        f"[{self.request_id}] Client disconnected after block {self.session.index}, "
                        f"stopping upstream stream"
                    )
                    return
        except Exception as exc:
            logger.error(
                f"[{self.request_id}] Upstream stream failed after streaming started: "
                f"{exc.__class__.__name__}: {exc}"
            )
            return
        finally:
            await _close_chunks(chunks, self.request_id)

        self.completed = True
        for event in finish(self.session):
            yield event

    async def adapt_stream(self, chunks: AsyncIterator[ChatCompletionChunk]) -> AsyncIterator[bytes]:
        """Transform upstream chunks into Messages SSE bytes."""
        events = self.iter_events(chunks)
        try:
            async for event in events:
                yield event.encode()
        finally:
            await events.aclose()


async def _close_chunks(chunks: Any, request_id: str) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as exc:
        logger.warning(f"[{request_id}] Failed to close upstream stream: {exc}")

