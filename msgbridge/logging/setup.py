"""Logging configuration for the bridge."""

import logging
import sys


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Set up logging with proper handlers and formatters."""
    numeric_level = logging.getLevelName(str(level).upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logger = logging.getLogger("msgbridge")
    logger.setLevel(numeric_level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate to root logger
    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
