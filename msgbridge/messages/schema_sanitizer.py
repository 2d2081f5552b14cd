"""Tool schema and tool name sanitization.

Tool definitions arrive from clients that sometimes serialize their schemas
badly: callables, cyclic structures, or placeholder strings such as
``"[object Object]"`` left behind by a JavaScript ``toString``. OpenAI-compatible
upstreams reject all of those, and they also reject the ``$schema`` key and
function names outside ``^[A-Za-z_][A-Za-z0-9_.-]{0,63}$``.
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any

logger = logging.getLogger("msgbridge")

MAX_TOOL_NAME_LENGTH = 64

_ABSENT = object()

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_.-]")
_INVALID_NAME_PREFIX = re.compile(r"^[^a-zA-Z_]+")
_PYTHON_REPR_ARTIFACT = re.compile(
    r"^<[\w.]+(?: [\w.]+)* (?:object )?at 0x[0-9a-fA-F]+>$"
)


def is_stringified_artifact(value: str) -> bool:
    """Return True for strings that are leftovers of a failed serialization."""
    stripped = value.strip()
    return (
        stripped == "[Object]"
        or stripped.startswith("[object")
        or stripped.startswith("{ [native code]")
        or bool(_PYTHON_REPR_ARTIFACT.match(stripped))
    )


def sanitize_json(value: Any) -> Any:
    """Strip everything that is not plain JSON data from ``value``.

    Returns None when nothing JSON-representable is left at the top level.
    Containers seen a second time (cycles or shared references) are dropped.
    Values nested deeper than the interpreter recursion limit sanitize to None.
    """
    try:
        result = _sanitize(value, set())
    except RecursionError:
        logger.warning("Dropping value nested too deeply to sanitize")
        return None
    return None if result is _ABSENT else result


def _sanitize(value: Any, seen: set[int]) -> Any:
    if value is None or isinstance(value, bool):
        return _ABSENT if value is None else value
    if isinstance(value, str):
        return _ABSENT if is_stringified_artifact(value) else value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else _ABSENT
    if not isinstance(value, (dict, list, tuple)):
        return _ABSENT

    if id(value) in seen:
        return _ABSENT
    seen.add(id(value))

    if isinstance(value, dict):
        result: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                continue
            sanitized = _sanitize(item, seen)
            if sanitized is not _ABSENT:
                result[key] = sanitized
        return result

    items = (_sanitize(item, seen) for item in value)
    return [item for item in items if item is not _ABSENT]


def sanitize_tool_schema(schema: Any) -> dict[str, Any]:
    """Sanitize a tool's ``input_schema`` into a JSON object for ``parameters``."""
    if not isinstance(schema, dict):
        return {}
    sanitized = sanitize_json(schema)
    if not isinstance(sanitized, dict):
        return {}
    sanitized.pop("$schema", None)
    return sanitized


def sanitize_tool_name(name: str) -> str:
    """Rewrite a tool name to satisfy the upstream's function name rules."""
    safe_name = _INVALID_NAME_CHARS.sub("_", name)
    safe_name = _INVALID_NAME_PREFIX.sub("_", safe_name)
    return safe_name[:MAX_TOOL_NAME_LENGTH]
