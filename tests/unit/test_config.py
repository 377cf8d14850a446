"""Unit tests for configuration module."""

import os

from unittest.mock import patch

from loki_mcp.config import Config, ConfigLoader, LokiConfig, MCPConfig


def load_with(env):
    with patch.dict(os.environ, env, clear=True), patch("loki_mcp.config.load_dotenv"):
        return ConfigLoader().load()


class TestConfigLoader:
    """Test configuration loader functionality."""

    def test_defaults(self):
        config = load_with({})

        assert isinstance(config, Config)
        assert config.loki.url == "http://localhost:3100"
        assert config.loki.username is None
        assert config.loki.password is None
        assert config.loki.timeout == 30
        assert config.loki.verify_ssl is True
        assert config.mcp.server_name == "loki-mcp"
        assert config.mcp.version == "1.3.0"
        assert config.mcp.metrics_path.endswith(".loki-mcp-metrics.json")
        assert config.mcp.log_level == "INFO"

    def test_environment_values(self):
        config = load_with({
            "LOKI_URL": "https://loki.example.com",
            "LOKI_USERNAME": "reader",
            "LOKI_PASSWORD": "secret",
            "LOKI_TIMEOUT": "5",
            "LOKI_VERIFY_SSL": "false",
            "MCP_SERVER_NAME": "prod-loki",
            "LOKI_MCP_METRICS_PATH": "/tmp/metrics.json",
            "LOG_LEVEL": "debug",
        })

        assert config.loki.url == "https://loki.example.com"
        assert config.loki.has_credentials
        assert config.loki.timeout == 5
        assert config.loki.verify_ssl is False
        assert config.mcp.server_name == "prod-loki"
        assert config.mcp.metrics_path == "/tmp/metrics.json"
        assert config.mcp.log_level == "DEBUG"

    def test_invalid_integer_falls_back(self):
        config = load_with({"LOKI_TIMEOUT": "soon"})
        assert config.loki.timeout == 30

    def test_partial_credentials(self):
        config = load_with({"LOKI_USERNAME": "reader"})
        assert config.loki.username == "reader"
        assert not config.loki.has_credentials

    def test_config_is_cached_until_reload(self):
        with patch.dict(os.environ, {"LOKI_URL": "http://first:3100"}, clear=True), \
                patch("loki_mcp.config.load_dotenv"):
            loader = ConfigLoader()
            assert loader.load().loki.url == "http://first:3100"

            os.environ["LOKI_URL"] = "http://second:3100"
            assert loader.load().loki.url == "http://first:3100"
            assert loader.reload().loki.url == "http://second:3100"


class TestConfigObjects:
    """Test configuration dataclasses."""

    def test_has_credentials(self):
        assert LokiConfig(username="u", password="p").has_credentials
        assert not LokiConfig(password="p").has_credentials
        assert not LokiConfig().has_credentials

    def test_mcp_defaults(self):
        assert MCPConfig().server_name == "loki-mcp"
