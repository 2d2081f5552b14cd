"""Main FastAPI application for msgbridge."""

import logging
import socket
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .api.routes import health, messages_endpoint
from .client_config import ensure_client_config
from .config_loader import BridgeSettings, load_config
from .core.upstream import UpstreamClient, build_upstream_client

logger = logging.getLogger("msgbridge")


def _log_bind_address(settings: BridgeSettings) -> None:
    logger.info(f"Configured bind address {settings.host}:{settings.port}")
    if settings.host == "0.0.0.0":
        hostname = socket.gethostname()
        logger.info(f"Reachable on local network at http://{hostname}:{settings.port}")


def create_app(
    settings: Optional[BridgeSettings] = None,
    upstream: Optional[UpstreamClient] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Parsed settings; loaded from the default config file if None
        upstream: Upstream client; built from ``settings.upstream`` if None

    Returns:
        The configured application. The upstream client is closed on shutdown.
    """
    if settings is None:
        settings = BridgeSettings.from_config(load_config())
    if upstream is None:
        upstream = build_upstream_client(settings.upstream)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("msgbridge starting up...")
        _log_bind_address(settings)
        if settings.initialize_client_config:
            ensure_client_config(settings.client_config_path)
        logger.info(
            f"Upstream: mode={settings.upstream.mode}, base={settings.upstream.api_base or 'default'}, "
            f"target_model={settings.upstream.target_model or '(requested model)'}"
        )
        logger.info("msgbridge ready to handle requests")
        try:
            yield
        finally:
            logger.info("msgbridge shutting down, closing upstream client")
            await upstream.aclose()

    app = FastAPI(title="msgbridge", lifespan=lifespan)
    app.state.settings = settings
    app.state.upstream = upstream

    # Register routes
    app.post("/v1/messages")(messages_endpoint)
    app.get("/health")(health)

    logger.info("FastAPI application created")
    return app


__all__ = ["create_app"]
