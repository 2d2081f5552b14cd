"""msgbridge - Anthropic Messages to OpenAI Chat Completions bridge

Accepts Messages API requests, forwards them to an OpenAI-compatible
chat-completion upstream and streams the answer back as Messages SSE events.

Example:
    >>> from msgbridge import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="0.0.0.0", port=3456)
"""

from .config_loader import BridgeSettings, UpstreamSettings, load_config
from .core import UpstreamError, build_upstream_client
from .logging import logger, setup_logging
from .main import create_app

__all__ = [
    "BridgeSettings",
    "UpstreamError",
    "UpstreamSettings",
    "build_upstream_client",
    "create_app",
    "load_config",
    "logger",
    "setup_logging",
]
