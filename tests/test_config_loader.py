"""Tests for the config loader module."""

import os
import tempfile
from pathlib import Path

import pytest
import yaml

from msgbridge.config_loader import (
    DEFAULT_PORT,
    BridgeSettings,
    _substitute_env_vars,
    load_config,
    resolve_config_path,
)
from msgbridge.core.exceptions import ConfigurationError
from msgbridge.messages.translator import EXCLUDED_TOOL_NAMES, MAX_TOOLS


def _write_config(directory: Path, data: dict) -> Path:
    path = directory / "config.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for loading configuration from YAML files."""

    def test_loads_simple_config(self):
        config_data = {"upstream": {"api_base": "http://test.local/v1", "api_key": "test-key"}}

        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            yaml.safe_dump(config_data, f)
            f.flush()

            try:
                result = load_config(f.name)
                assert result["upstream"]["api_base"] == "http://test.local/v1"
            finally:
                os.unlink(f.name)

    def test_raises_error_for_missing_config(self):
        with pytest.raises(RuntimeError, match="Config file not found"):
            load_config("/nonexistent/path/config.yaml")

    def test_uses_env_var_for_default_path(self, tmp_path, monkeypatch):
        path = _write_config(tmp_path, {"upstream": {"mode": "sdk"}})
        monkeypatch.setenv("MSGBRIDGE_CONFIG", str(path))

        assert load_config()["upstream"]["mode"] == "sdk"

    def test_reads_dotenv_next_to_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("MSGBRIDGE_TEST_KEY", raising=False)
        (tmp_path / ".env").write_text("MSGBRIDGE_TEST_KEY=from-dotenv\n", encoding="utf-8")
        path = _write_config(tmp_path, {"upstream": {"api_key": "${MSGBRIDGE_TEST_KEY}"}})

        result = load_config(str(path))

        assert result["upstream"]["api_key"] == "from-dotenv"
        assert "MSGBRIDGE_TEST_KEY" not in os.environ

    def test_non_mapping_config_is_rejected(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_default_config_file_parses(self):
        config = load_config(str(resolve_config_path("configs/config_default.yaml")), substitute_env=False)
        settings = BridgeSettings.from_config(config)

        assert settings.port == 3456
        assert settings.upstream.extra_headers["X-Title"] == "Claude Code Copilot Router"
        assert settings.upstream.target_model is None


class TestSubstituteEnvVars:
    def test_braced_and_simple_formats(self, monkeypatch):
        monkeypatch.setenv("MB_HOST", "example.com")
        monkeypatch.setenv("MB_PORT", "8080")

        result = _substitute_env_vars({"url": "http://${MB_HOST}:$MB_PORT/v1", "items": ["$MB_HOST"]})

        assert result == {"url": "http://example.com:8080/v1", "items": ["example.com"]}

    def test_env_values_take_priority(self, monkeypatch):
        monkeypatch.setenv("MB_KEY", "from-env")
        assert _substitute_env_vars("${MB_KEY}", {"MB_KEY": "from-file"}) == "from-file"

    def test_unset_variable_keeps_placeholder(self, monkeypatch):
        monkeypatch.delenv("MB_MISSING", raising=False)
        assert _substitute_env_vars("${MB_MISSING}") == "${MB_MISSING}"

    def test_non_strings_untouched(self):
        assert _substitute_env_vars({"n": 1, "b": True, "x": None}) == {"n": 1, "b": True, "x": None}


class TestBridgeSettings:
    def test_defaults(self):
        settings = BridgeSettings.from_config({})

        assert settings.host == "0.0.0.0"
        assert settings.port == DEFAULT_PORT
        assert settings.upstream.mode == "http"
        assert settings.upstream.timeout == 60.0
        assert settings.upstream.supports_vision is True
        assert settings.upstream.vision_header == "Copilot-Vision-Request"
        assert settings.excluded_tools == EXCLUDED_TOOL_NAMES
        assert settings.max_tools == MAX_TOOLS
        assert settings.initialize_client_config is False

    def test_full_config(self):
        config = {
            "upstream": {
                "mode": "SDK",
                "api_base": "https://api.example.com/v1",
                "api_key": "sk-test",
                "target_model": "gpt-4o",
                "request_timeout": "30",
                "supports_vision": "false",
                "extra_headers": {"X-Title": "t", "X-Empty": ""},
            },
            "translation": {"excluded_tools": ["Foo"], "max_tools": 10},
            "proxy_settings": {
                "server": {"host": "127.0.0.1", "port": 9000},
                "logging": {"level": "debug"},
                "client_config": {"initialize": True, "path": "/tmp/client.json"},
            },
        }
        settings = BridgeSettings.from_config(config)

        assert settings.upstream.mode == "sdk"
        assert settings.upstream.api_base == "https://api.example.com/v1"
        assert settings.upstream.target_model == "gpt-4o"
        assert settings.upstream.timeout == 30.0
        assert settings.upstream.supports_vision is False
        assert dict(settings.upstream.extra_headers) == {"X-Title": "t"}
        assert settings.excluded_tools == frozenset({"Foo"})
        assert settings.max_tools == 10
        assert (settings.host, settings.port) == ("127.0.0.1", 9000)
        assert settings.log_level == "DEBUG"
        assert settings.initialize_client_config is True
        assert settings.client_config_path == "/tmp/client.json"

    def test_unresolved_placeholders_are_unset(self):
        config = {"upstream": {"target_model": "${OPENAI_MODEL}", "proxy_url": "$PROXY"}}
        settings = BridgeSettings.from_config(config)

        assert settings.upstream.target_model is None
        assert settings.upstream.proxy_url is None

    def test_proxy_url_falls_back_to_env(self, monkeypatch):
        monkeypatch.setenv("PROXY_URL", "http://proxy.local:3128")
        assert BridgeSettings.from_config({}).upstream.proxy_url == "http://proxy.local:3128"

    def test_env_overrides_server_address(self, monkeypatch):
        monkeypatch.setenv("MSGBRIDGE_HOST", "10.0.0.5")
        monkeypatch.setenv("MSGBRIDGE_PORT", "7777")
        config = {"proxy_settings": {"server": {"host": "127.0.0.1", "port": 9000}}}

        settings = BridgeSettings.from_config(config)
        assert (settings.host, settings.port) == ("10.0.0.5", 7777)

    @pytest.mark.parametrize(
        "config",
        [
            {"upstream": {"mode": "grpc"}},
            {"upstream": {"request_timeout": "soon"}},
            {"upstream": {"extra_headers": ["X-Title"]}},
            {"proxy_settings": {"server": {"port": "http"}}},
        ],
    )
    def test_invalid_values_raise(self, config):
        with pytest.raises(ConfigurationError):
            BridgeSettings.from_config(config)
