"""Configuration management for btclient.

Hierarchical loading: defaults → TOML config file → environment.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from btclient.models import ClientConfig
from btclient.utils.exceptions import ConfigurationError
from btclient.utils.logging_config import setup_logging

# Global configuration instance
_config_manager: ConfigManager | None = None

ENV_MAPPINGS: dict[str, str] = {
    "BTCLIENT_DHT": "dht",
    "BTCLIENT_TRACKERS": "trackers",
    "BTCLIENT_TORRENT_PORT": "torrent_port",
    "BTCLIENT_DHT_PORT": "dht_port",
    "BTCLIENT_PEER_ID": "peer_id",
    "BTCLIENT_NODE_ID": "node_id",
    "BTCLIENT_BLOCKLIST": "blocklist",
    "BTCLIENT_LISTEN_INTERFACE": "listen_interface",
    "BTCLIENT_DHT_BOOTSTRAP_TIMEOUT": "dht_bootstrap_timeout",
    "BTCLIENT_TRACKER_ANNOUNCE_INTERVAL": "tracker_announce_interval",
    "BTCLIENT_TRACKER_REQUEST_TIMEOUT": "tracker_request_timeout",
    "BTCLIENT_LOG_LEVEL": "observability.log_level",
    "BTCLIENT_LOG_FILE": "observability.log_file",
    "BTCLIENT_STRUCTURED_LOGGING": "observability.structured_logging",
    "BTCLIENT_LOG_CORRELATION_ID": "observability.log_correlation_id",
    "BTCLIENT_ENABLE_METRICS": "observability.enable_metrics",
    "BTCLIENT_RATE_WINDOW": "observability.rate_window",
}

_LIST_PATHS = frozenset({"blocklist"})
_TEXT_PATHS = frozenset(
    {"peer_id", "node_id", "listen_interface", "observability.log_file"}
)
_BOOL_PATHS = frozenset(
    {
        "dht",
        "trackers",
        "observability.structured_logging",
        "observability.log_correlation_id",
        "observability.enable_metrics",
    }
)


def _parse_env_value(raw: str, path: str) -> bool | int | float | str | list[str]:
    if path in _LIST_PATHS:
        return [item.strip() for item in raw.split(",") if item.strip()]
    if path in _TEXT_PATHS:
        return raw

    if path in _BOOL_PATHS:
        low = raw.lower()
        if low in {"true", "1", "yes", "on"}:
            return True
        if low in {"false", "0", "no", "off"}:
            return False
        return raw
    try:
        if "." in raw:
            return float(raw)
        return int(raw)
    except ValueError:
        return raw


def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = d
    for p in parts[:-1]:
        cur = cur.setdefault(p, {})
    cur[parts[-1]] = value


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(
        self, config_file: str | Path | None = None, configure_logging: bool = True
    ):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for btclient.toml
            configure_logging: Apply the observability settings to logging

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        if configure_logging:
            self._setup_logging()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        search_paths = [
            Path.cwd() / "btclient.toml",
            Path.home() / ".config" / "btclient" / "btclient.toml",
        ]
        for path in search_paths:
            if path.exists():
                return path
        return None

    def _load_config(self) -> ClientConfig:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return ClientConfig(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}
        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))
        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def export(self) -> str:
        """Export current configuration as TOML."""
        data = self.config.model_dump(mode="json", exclude={"peer_id", "node_id"})
        data["node_id"] = self.config.node_id.hex()
        return toml.dumps({k: v for k, v in data.items() if v is not None})

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)
        logging.getLogger(__name__).debug(
            "Loaded configuration from %s", self.config_file or "defaults"
        )


def get_config() -> ClientConfig:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(
    config_file: str | Path | None = None, configure_logging: bool = True
) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file, configure_logging)
    return _config_manager


def reset_config() -> None:
    """Drop the global configuration manager."""
    global _config_manager
    _config_manager = None
