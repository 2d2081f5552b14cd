"""First-run client configuration file.

The Messages client refuses to start without a local config marking
onboarding as done; this writes a minimal one if none exists.
"""

import json
import logging
import secrets
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger("msgbridge")

DEFAULT_CLIENT_CONFIG_PATH = "~/.claude.json"


def default_client_config() -> dict[str, Any]:
    return {
        "numStartups": 184,
        "autoUpdaterStatus": "enabled",
        "userID": secrets.token_hex(32),
        "hasCompletedOnboarding": True,
        "lastOnboardingVersion": "0.2.9",
        "projects": {},
    }


def ensure_client_config(path: str = DEFAULT_CLIENT_CONFIG_PATH) -> Optional[Path]:
    """Write the default client config if the file does not exist yet.

    Returns:
        The path written, or None when a file was already there
    """
    config_path = Path(path).expanduser()
    if config_path.exists():
        logger.debug(f"Client config already present at {config_path}")
        return None

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(default_client_config(), indent=2), encoding="utf-8")
    logger.info(f"Wrote default client config to {config_path}")
    return config_path
