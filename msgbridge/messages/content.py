"""Content item mapping from Messages blocks to chat-completion parts.

The upstream only understands ``text`` parts and, when vision is enabled,
``image_url`` parts. Images are forwarded when their URL is something the
upstream can fetch (``data:`` or ``http(s)``); every other block collapses
into a text part.

Image sources recognised, in priority order:
    {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "..."}}
    {"type": "image", "source": {"data": "https://..."}}
    {"type": "image", "source": {"type": "url", "url": "https://..."}}
    {"type": "image_url", "image_url": {"url": "https://..."}}
    {"type": "image", "url": "https://..."}
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from ..types import ContentPart

logger = logging.getLogger("msgbridge")

IMAGE_BLOCK_TYPES = frozenset({"image", "image_url"})

IMAGE_NOT_FOUND_TEXT = "[Image omitted: the image data could not be located]"
IMAGE_LOCAL_FILE_TEXT = (
    "[Image omitted: local file {url} cannot be forwarded, "
    "the model has no access to this machine's filesystem]"
)
IMAGE_UNSUPPORTED_TEXT = "[Image omitted: unsupported image format ({scheme})]"
IMAGE_VISION_DISABLED_TEXT = "[Image omitted: the upstream model does not accept images]"


def is_image_item(item: Any) -> bool:
    """Return True if a content item is an image block."""
    return isinstance(item, Mapping) and item.get("type") in IMAGE_BLOCK_TYPES


def extract_image_url(item: Mapping[str, Any]) -> Optional[str]:
    """Find the URL of an image block, synthesizing a data URL for base64 sources."""
    source = item.get("source")
    if isinstance(source, Mapping):
        if source.get("type") == "base64":
            media_type = source.get("media_type") or "image/png"
            return f"data:{media_type};base64,{source.get('data') or ''}"
        if source.get("data"):
            return str(source["data"])
        if source.get("url"):
            return str(source["url"])

    image_url = item.get("image_url")
    if isinstance(image_url, Mapping) and image_url.get("url"):
        return str(image_url["url"])
    if isinstance(image_url, str) and image_url:
        return image_url

    url = item.get("url")
    if isinstance(url, str) and url:
        return url
    return None


def _text_part(text: str) -> ContentPart:
    return {"type": "text", "text": text}


def _convert_image(item: Mapping[str, Any], supports_vision: bool) -> ContentPart:
    url = extract_image_url(item)
    if not url:
        return _text_part(IMAGE_NOT_FOUND_TEXT)

    lowered = url.lower()
    if lowered.startswith("file://"):
        return _text_part(IMAGE_LOCAL_FILE_TEXT.format(url=url))

    if lowered.startswith("data:") or lowered.startswith("http"):
        if not supports_vision:
            return _text_part(IMAGE_VISION_DISABLED_TEXT)
        return {"type": "image_url", "image_url": {"url": url, "detail": "auto"}}

    scheme = lowered.split(":", 1)[0] if ":" in lowered else "no scheme"
    logger.debug(f"Unsupported image URL scheme: {scheme}")
    return _text_part(IMAGE_UNSUPPORTED_TEXT.format(scheme=scheme))


def _structured_payload(item: Mapping[str, Any]) -> Any:
    content = item.get("content")
    if content:
        return content
    if item.get("type") == "tool_use":
        return item.get("input")
    return None


def to_json_text(value: Any) -> str:
    """Serialize like ``JSON.stringify``: compact separators, unicode kept.

    Returns "" for values that cannot be serialized (cycles, excessive nesting).
    """
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    except (TypeError, ValueError, RecursionError) as exc:
        logger.warning(f"Could not serialize content payload: {exc.__class__.__name__}")
        return ""


def normalize_content_item(
    item: Any,
    role: Optional[str] = None,
    *,
    supports_vision: bool = True,
) -> Optional[ContentPart]:
    """Map one Messages content block to a chat-completion content part.

    Args:
        item: The source content block
        role: Role of the enclosing message (for logging only)
        supports_vision: Whether the upstream accepts ``image_url`` parts

    Returns:
        A ``text`` or ``image_url`` part, or None for items that are not blocks
    """
    if not isinstance(item, Mapping):
        logger.debug(f"Dropping non-object content item in {role or 'unknown'} message")
        return None

    if is_image_item(item):
        return _convert_image(item, supports_vision)

    payload = _structured_payload(item)
    if payload:
        return _text_part(to_json_text(payload))

    text = item.get("text")
    if text:
        return _text_part(text if isinstance(text, str) else to_json_text(text))
    return _text_part("")
