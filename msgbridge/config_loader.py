"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError
from .messages.translator import EXCLUDED_TOOL_NAMES, MAX_TOOLS

logger = logging.getLogger("msgbridge")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3456
DEFAULT_TIMEOUT = 60.0
DEFAULT_VISION_HEADER = "Copilot-Vision-Request"
UPSTREAM_MODES = ("http", "sdk")

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    expanded = Path(path).expanduser()
    if expanded.is_absolute():
        return expanded
    project_root = Path(__file__).parent.parent
    return project_root / expanded


def resolve_env_path(config_path: Path, env_path: Optional[str] = None) -> Path:
    """Resolve the env file path for a config file."""
    if env_path:
        return resolve_config_path(env_path)
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_config(
    path: Optional[str] = None,
    env_path: Optional[str] = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to MSGBRIDGE_CONFIG,
              or configs/config_default.yaml in the project root.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration dictionary.
    """
    if path is None:
        path = os.getenv("MSGBRIDGE_CONFIG") or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)

    logger.info(f"Loading configuration from {config_path}")

    if not config_path.exists():
        logger.error(f"Config file not found: {config_path}")
        raise RuntimeError(f"Config file not found: {config_path}")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info(f"Loading environment variables from {env_file}")
            env_values = load_env_values(env_file)

    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    logger.info(f"Configuration loaded successfully from {config_path}")
    return data


def _substitute_env_vars(
    obj: Any, env_values: Optional[Mapping[str, str]] = None
) -> Any:
    """Recursively substitute environment variables in configuration values.

    Supports two formats:
    - ${VAR_NAME}: Braced format
    - $VAR_NAME: Simple format

    Unset variables leave the literal placeholder in place.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {k: _substitute_env_vars(v, env_values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute_env_vars(item, env_values) for item in obj]
    if isinstance(obj, str):
        def replace_var(match):
            var_name = match.group(1) or match.group(2)
            value = env_values.get(var_name)
            if value is None:
                value = os.getenv(var_name)
            if value is None:
                logger.warning(
                    f"CONFIG WARNING: Environment variable '${var_name}' is not set! "
                    f"Check your .env file or export it in your shell."
                )
                return match.group(0)
            return value

        return _ENV_PATTERN.sub(replace_var, obj)
    return obj


def _section(config: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    current: Any = config
    for key in keys:
        current = current.get(key) if isinstance(current, Mapping) else None
    return current if isinstance(current, Mapping) else {}


def _optional_str(value: Any) -> Optional[str]:
    """Return a stripped string, or None for empty values and unresolved placeholders."""
    if value is None:
        return None
    text = str(value).strip()
    if not text or _ENV_PATTERN.fullmatch(text):
        return None
    return text


def _parse_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_float(value: Any, default: float, name: str) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc


def _parse_int(value: Any, default: int, name: str) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


@dataclass(frozen=True)
class UpstreamSettings:
    """Where and how the translated request is sent."""

    api_base: str = ""
    api_key: str = ""
    mode: str = "http"
    target_model: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    proxy_url: Optional[str] = None
    supports_vision: bool = True
    vision_header: str = DEFAULT_VISION_HEADER
    extra_headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BridgeSettings:
    """Settings for one bridge process, parsed once at startup."""

    upstream: UpstreamSettings = field(default_factory=UpstreamSettings)
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = "INFO"
    excluded_tools: frozenset = EXCLUDED_TOOL_NAMES
    max_tools: int = MAX_TOOLS
    initialize_client_config: bool = False
    client_config_path: str = "~/.claude.json"

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "BridgeSettings":
        """Build settings from a loaded config mapping.

        Environment variables MSGBRIDGE_HOST / MSGBRIDGE_PORT take priority
        over proxy_settings.server; PROXY_URL is used when no proxy_url is set.
        """
        upstream_cfg = _section(config, "upstream")
        translation_cfg = _section(config, "translation")
        server_cfg = _section(config, "proxy_settings", "server")
        logging_cfg = _section(config, "proxy_settings", "logging")
        client_cfg = _section(config, "proxy_settings", "client_config")

        mode = (_optional_str(upstream_cfg.get("mode")) or "http").lower()
        if mode not in UPSTREAM_MODES:
            raise ConfigurationError(
                f"upstream.mode must be one of {', '.join(UPSTREAM_MODES)}, got {mode!r}"
            )

        raw_headers = upstream_cfg.get("extra_headers") or {}
        if not isinstance(raw_headers, Mapping):
            raise ConfigurationError("upstream.extra_headers must be a mapping")
        extra_headers = {
            str(key): str(value)
            for key, value in raw_headers.items()
            if _optional_str(value) is not None
        }

        upstream = UpstreamSettings(
            api_base=_optional_str(upstream_cfg.get("api_base")) or "",
            api_key=_optional_str(upstream_cfg.get("api_key")) or "",
            mode=mode,
            target_model=_optional_str(upstream_cfg.get("target_model")),
            timeout=_parse_float(upstream_cfg.get("request_timeout"), DEFAULT_TIMEOUT, "upstream.request_timeout"),
            proxy_url=_optional_str(upstream_cfg.get("proxy_url")) or _optional_str(os.getenv("PROXY_URL")),
            supports_vision=_parse_bool(upstream_cfg.get("supports_vision"), default=True),
            vision_header=_optional_str(upstream_cfg.get("vision_header")) or DEFAULT_VISION_HEADER,
            extra_headers=extra_headers,
        )

        excluded = translation_cfg.get("excluded_tools")
        excluded_tools = (
            frozenset(str(name) for name in excluded)
            if isinstance(excluded, list)
            else EXCLUDED_TOOL_NAMES
        )

        host = os.getenv("MSGBRIDGE_HOST") or _optional_str(server_cfg.get("host")) or DEFAULT_HOST
        port_value = os.getenv("MSGBRIDGE_PORT") or server_cfg.get("port")

        return cls(
            upstream=upstream,
            host=host,
            port=_parse_int(port_value, DEFAULT_PORT, "server port"),
            log_level=(_optional_str(logging_cfg.get("level")) or "INFO").upper(),
            excluded_tools=excluded_tools,
            max_tools=max(0, _parse_int(translation_cfg.get("max_tools"), MAX_TOOLS, "translation.max_tools")),
            initialize_client_config=_parse_bool(client_cfg.get("initialize")),
            client_config_path=_optional_str(client_cfg.get("path")) or "~/.claude.json",
        )
