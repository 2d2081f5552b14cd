"""Messages -> OpenAI Chat Completions request translation.

This module turns an Anthropic Messages API request body into the
OpenAI-compatible chat-completion request sent upstream.

Key mappings:
- Messages system entries (top-level) -> leading system messages
- Messages content blocks -> text / image_url content parts
- Messages tools -> OpenAI functions/tools (sanitized, capped)
- Messages tool_choice -> OpenAI tool_choice

Translation is total: missing or wrongly typed fields fall back to empty
defaults instead of raising, so every inbound body produces a request.

Reference:
- Anthropic Messages API: https://docs.anthropic.com/en/api/messages
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from ..types import ChatMessage, ContentPart
from .content import is_image_item, normalize_content_item
from .schema_sanitizer import sanitize_json, sanitize_tool_name, sanitize_tool_schema

logger = logging.getLogger("msgbridge")

MAX_TOOLS = 64
EXCLUDED_TOOL_NAMES = frozenset({"StickerRequest", "UnusedFunction", "DeprecatedTool"})


@dataclass(frozen=True)
class NormalizedRequest:
    """The translated request, exactly as handed to the upstream client."""

    model: Any
    messages: tuple[ChatMessage, ...]
    temperature: Optional[float] = None
    tools: Optional[tuple[dict[str, Any], ...]] = None
    max_tokens: Optional[int] = None
    stop: Optional[tuple[str, ...]] = None
    top_p: Optional[float] = None
    tool_choice: Any = None
    has_images: bool = False
    stream: bool = True

    def to_payload(self, model: Optional[str] = None) -> dict[str, Any]:
        """Build the JSON body for the upstream call.

        Args:
            model: Upstream model override; defaults to the requested model

        Returns:
            A fresh dict; mutating it never affects this request
        """
        payload: dict[str, Any] = {
            "model": model or self.model,
            "messages": copy.deepcopy(list(self.messages)),
            "stream": True,
        }
        if self.temperature is not None:
            payload["temperature"] = self.temperature
        if self.tools:
            payload["tools"] = copy.deepcopy(list(self.tools))
        if self.tool_choice is not None:
            payload["tool_choice"] = copy.deepcopy(self.tool_choice)
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        if self.stop:
            payload["stop"] = list(self.stop)
        if self.top_p is not None:
            payload["top_p"] = self.top_p
        return payload


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _convert_system(system: Any) -> list[ChatMessage]:
    """Turn the top-level system entries into system messages, in order."""
    messages: list[ChatMessage] = []
    for entry in _as_list(system):
        if not isinstance(entry, Mapping):
            logger.debug(f"Skipping non-object system entry: {entry!r}")
            continue
        messages.append({"role": "system", "content": entry.get("text") or ""})
    return messages


def _convert_messages(
    raw_messages: Any,
    supports_vision: bool,
) -> tuple[list[ChatMessage], bool]:
    """Map conversation messages; also report whether any image was seen."""
    messages: list[ChatMessage] = []
    has_images = False

    for msg in _as_list(raw_messages):
        if not isinstance(msg, Mapping):
            logger.debug(f"Skipping non-object message: {msg!r}")
            continue
        role = msg.get("role")
        content = msg.get("content")

        if isinstance(content, list):
            parts: list[ContentPart] = []
            for item in content:
                if is_image_item(item):
                    has_images = True
                part = normalize_content_item(item, role, supports_vision=supports_vision)
                if part is not None:
                    parts.append(part)
            messages.append({"role": role, "content": parts})
        else:
            messages.append({"role": role, "content": content})

    return messages, has_images


def _convert_tools(
    tools: Any,
    excluded: Iterable[str],
    max_tools: int,
) -> list[dict[str, Any]]:
    """Convert Messages tools to OpenAI format.

    Messages: {"name": "...", "description": "...", "input_schema": {...}}
    OpenAI: {"type": "function", "function": {"name": "...", "description": "...", "parameters": {...}}}

    Entries that are not objects, have no name, or are excluded are dropped
    before the cap is applied.
    """
    excluded = set(excluded)
    survivors = [
        tool
        for tool in _as_list(tools)
        if isinstance(tool, Mapping)
        and isinstance(tool.get("name"), str)
        and tool["name"]
        and tool["name"] not in excluded
    ]
    if len(survivors) > max_tools:
        logger.warning(f"Request has {len(survivors)} tools; forwarding only the first {max_tools}")

    openai_tools = []
    for tool in survivors[:max_tools]:
        function: dict[str, Any] = {"name": sanitize_tool_name(tool["name"])}
        description = tool.get("description")
        if not isinstance(description, str):
            description = sanitize_json(description)
        if description is not None:
            function["description"] = description
        function["parameters"] = sanitize_tool_schema(tool.get("input_schema"))
        openai_tools.append({"type": "function", "function": function})
    return openai_tools


def _convert_tool_choice(tool_choice: Any) -> Any:
    """Convert Messages tool_choice to OpenAI format.

    Messages: "auto" | "any" | "none" | {"type": "tool", "name": "..."}
    OpenAI: "auto" | "required" | "none" | {"type": "function", "function": {"name": "..."}}
    """
    if isinstance(tool_choice, str):
        choice_type = tool_choice
    elif isinstance(tool_choice, Mapping):
        choice_type = tool_choice.get("type")
    else:
        return None

    if choice_type == "tool" and isinstance(tool_choice, Mapping):
        name = tool_choice.get("name")
        if not isinstance(name, str) or not name:
            return None
        return {"type": "function", "function": {"name": sanitize_tool_name(name)}}
    if choice_type == "any":
        return "required"
    if choice_type in ("auto", "none"):
        return choice_type
    return None


def _convert_stop(stop_sequences: Any) -> Optional[tuple[str, ...]]:
    stops = tuple(s for s in _as_list(stop_sequences) if isinstance(s, str))
    return stops or None


def messages_to_chat_completions(
    payload: Any,
    *,
    supports_vision: bool = True,
    excluded_tools: Iterable[str] = EXCLUDED_TOOL_NAMES,
    max_tools: int = MAX_TOOLS,
) -> NormalizedRequest:
    """Translate a Messages request body to a chat-completion request.

    Args:
        payload: Messages API request body (any JSON value)
        supports_vision: Whether images may be forwarded as image_url parts
        excluded_tools: Tool names that are never forwarded
        max_tools: Maximum number of tools forwarded upstream

    Returns:
        The NormalizedRequest; ``stream`` is always True
    """
    if not isinstance(payload, Mapping):
        payload = {}

    system_messages = _convert_system(payload.get("system"))
    messages, has_images = _convert_messages(payload.get("messages"), supports_vision)
    tools = _convert_tools(payload.get("tools"), excluded_tools, max_tools)

    temperature = payload.get("temperature")
    top_p = payload.get("top_p")
    max_tokens = payload.get("max_tokens")

    request = NormalizedRequest(
        model=payload.get("model"),
        messages=tuple(system_messages + messages),
        temperature=temperature if _is_number(temperature) else None,
        tools=tuple(tools) or None,
        max_tokens=max_tokens if isinstance(max_tokens, int) and not isinstance(max_tokens, bool) else None,
        stop=_convert_stop(payload.get("stop_sequences")),
        top_p=top_p if _is_number(top_p) else None,
        tool_choice=_convert_tool_choice(payload.get("tool_choice")) if tools else None,
        has_images=has_images,
    )

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"Translated request: model={request.model}, messages={len(request.messages)}, "
            f"tools={len(request.tools or ())}, temperature={request.temperature}, "
            f"images={request.has_images}"
        )
        if request.tools:
            try:
                tools_json = json.dumps(request.tools, indent=2, ensure_ascii=False)
                logger.debug(f"Translated tools:\n{tools_json}")
            except (TypeError, ValueError, RecursionError) as exc:
                logger.error(f"Failed to serialize translated tools for logging: {exc}")

    return request
