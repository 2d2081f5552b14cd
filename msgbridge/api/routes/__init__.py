"""API routes for the bridge."""

from .messages import health, messages_endpoint

__all__ = ["health", "messages_endpoint"]
