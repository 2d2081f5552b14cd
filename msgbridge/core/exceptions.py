"""Core exceptions for the bridge."""

from typing import Optional


class BridgeError(Exception):
    """Base exception for bridge errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class UpstreamError(BridgeError):
    """Raised when the upstream call fails before or during streaming."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ConfigurationError(BridgeError):
    """Raised when there's an issue with the configuration."""
    pass
