"""Command line entry point: ``python -m msgbridge``."""

import argparse
import os
from typing import Optional, Sequence

import uvicorn

from .config_loader import BridgeSettings, load_config
from .logging import setup_logging
from .main import create_app


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="msgbridge",
        description="Serve Anthropic Messages requests from an OpenAI-compatible upstream.",
    )
    parser.add_argument("--config", help="Path to the YAML config file")
    parser.add_argument("--host", help="Bind address (overrides config and MSGBRIDGE_HOST)")
    parser.add_argument("--port", type=int, help="Bind port (overrides config and MSGBRIDGE_PORT)")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    if args.host:
        os.environ["MSGBRIDGE_HOST"] = args.host
    if args.port is not None:
        os.environ["MSGBRIDGE_PORT"] = str(args.port)

    settings = BridgeSettings.from_config(load_config(args.config))
    setup_logging(settings.log_level)

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
