"""Configuration management for Loki MCP Server."""

import os
from typing import Optional
from dataclasses import dataclass
import structlog
from dotenv import load_dotenv

logger = structlog.get_logger(__name__)


@dataclass
class LokiConfig:
    """Loki connection configuration."""
    url: str = "http://localhost:3100"
    username: Optional[str] = None
    password: Optional[str] = None
    timeout: int = 30
    verify_ssl: bool = True

    @property
    def has_credentials(self) -> bool:
        """Basic auth is only sent when both halves are present."""
        return bool(self.username and self.password)


@dataclass
class MCPConfig:
    """MCP server configuration."""
    server_name: str = "loki-mcp"
    version: str = "1.3.0"
    metrics_path: str = os.path.join(os.path.expanduser("~"), ".loki-mcp-metrics.json")
    log_level: str = "INFO"


@dataclass
class Config:
    """Main configuration container."""
    loki: LokiConfig
    mcp: MCPConfig


class ConfigLoader:
    """Configuration loader using environment variables only."""

    def __init__(self):
        """Initialize configuration loader."""
        self._config: Optional[Config] = None
        # Load .env file if it exists
        load_dotenv()

    def load(self) -> Config:
        """Load configuration from environment variables.

        Returns:
            Config: Loaded configuration
        """
        if self._config is not None:
            return self._config

        logger.info("Loading configuration from environment variables")
        self._config = self._create_config_from_env()
        logger.info("Configuration loaded successfully", loki_url=self._config.loki.url)
        return self._config

    def _create_config_from_env(self) -> Config:
        """Create configuration objects from environment variables."""
        loki_config = LokiConfig(
            url=os.getenv('LOKI_URL', 'http://localhost:3100'),
            username=os.getenv('LOKI_USERNAME') or None,
            password=os.getenv('LOKI_PASSWORD') or None,
            timeout=self._get_int_env('LOKI_TIMEOUT', 30),
            verify_ssl=self._get_bool_env('LOKI_VERIFY_SSL', True)
        )

        if loki_config.username and not loki_config.password:
            logger.warning("LOKI_USERNAME set without LOKI_PASSWORD, requests will be unauthenticated")
        elif loki_config.password and not loki_config.username:
            logger.warning("LOKI_PASSWORD set without LOKI_USERNAME, requests will be unauthenticated")

        default_metrics_path = os.path.join(os.path.expanduser("~"), ".loki-mcp-metrics.json")
        mcp_config = MCPConfig(
            server_name=os.getenv('MCP_SERVER_NAME', 'loki-mcp'),
            version=os.getenv('MCP_VERSION', '1.3.0'),
            metrics_path=os.getenv('LOKI_MCP_METRICS_PATH', default_metrics_path),
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper()
        )

        return Config(loki=loki_config, mcp=mcp_config)

    def _get_int_env(self, env_var: str, default: int) -> int:
        """Get integer value from environment variable with default."""
        value = os.getenv(env_var)
        if value is None:
            return default

        try:
            return int(value)
        except ValueError:
            logger.warning("Invalid integer value for environment variable, using default",
                           env_var=env_var, value=value, default=default)
            return default

    def _get_bool_env(self, env_var: str, default: bool) -> bool:
        """Get boolean value from environment variable with default."""
        value = os.getenv(env_var)
        if value is None:
            return default

        return value.lower() in ('true', '1', 'yes', 'on')

    def reload(self) -> Config:
        """Reload configuration from environment variables."""
        load_dotenv(override=True)
        self._config = None
        return self.load()


# Global configuration instance
_config_loader = ConfigLoader()


def get_config() -> Config:
    """Get the global configuration instance."""
    return _config_loader.load()


def reload_config() -> Config:
    """Reload the global configuration."""
    return _config_loader.reload()
