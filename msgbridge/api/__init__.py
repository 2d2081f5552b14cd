"""API module for the bridge."""

from .routes import health, messages_endpoint

__all__ = ["health", "messages_endpoint"]
