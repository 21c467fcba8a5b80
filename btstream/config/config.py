"""Configuration management for btstream.

Provides centralized configuration with TOML support, validation and
hierarchical loading from defaults -> config file -> environment -> CLI.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from btstream.models import Config
from btstream.utils.exceptions import ConfigurationError
from btstream.utils.logging_config import setup_logging

CONFIG_FILE_NAME = "btstream.toml"

# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    # Server
    "PORT": "server.port",
    "BTSTREAM_HOST": "server.host",
    "BTSTREAM_PORT": "server.port",
    "BTSTREAM_API_BASE_PATH": "server.api_base_path",
    "BTSTREAM_CORS_ORIGINS": "server.cors_origins",
    "BTSTREAM_SHUTDOWN_TIMEOUT": "server.shutdown_timeout",
    # Resolver
    "BTSTREAM_METADATA_TIMEOUT": "resolver.metadata_timeout",
    # Streaming
    "BTSTREAM_CHUNK_SIZE": "streaming.chunk_size",
    "BTSTREAM_POLL_INTERVAL": "streaming.poll_interval",
    "BTSTREAM_DEFAULT_MEDIA_TYPE": "streaming.default_media_type",
    # Library engine
    "BTSTREAM_TORRENT_DIR": "library.torrent_dir",
    "BTSTREAM_DATA_DIR": "library.data_dir",
    "BTSTREAM_SCAN_INTERVAL": "library.scan_interval",
    # Observability
    "BTSTREAM_LOG_LEVEL": "observability.log_level",
    "BTSTREAM_LOG_FILE": "observability.log_file",
    "BTSTREAM_STRUCTURED_LOGGING": "observability.structured_logging",
    "BTSTREAM_LOG_CORRELATION_ID": "observability.log_correlation_id",
}

# Values kept as strings even when they look numeric
_STRING_PATHS = {
    "server.host",
    "server.api_base_path",
    "streaming.default_media_type",
    "library.torrent_dir",
    "library.data_dir",
    "observability.log_level",
    "observability.log_file",
}

_LIST_PATHS = {"server.cors_origins"}

# Global configuration instance
_config_manager: ConfigManager | None = None


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None, *, configure_logging: bool = True):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for btstream.toml
            configure_logging: Apply the observability section to `logging`

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

        # Search in current directory, then home directory
        search_paths = [
            Path.cwd() / CONFIG_FILE_NAME,
            Path.home() / ".config" / "btstream" / CONFIG_FILE_NAME,
            Path.home() / f".{CONFIG_FILE_NAME}",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file is not None:
            if not self.config_file.exists():
                msg = f"Configuration file not found: {self.config_file}"
                raise ConfigurationError(msg)
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e

        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        def _parse_env_value(raw: str, path: str) -> bool | int | float | str | list[str]:
            if path in _LIST_PATHS:
                return [item.strip() for item in raw.split(",") if item.strip()]
            if path in _STRING_PATHS:
                return raw

            low = raw.lower()
            if low in {"true", "yes", "on"}:
                return True
            if low in {"false", "no", "off"}:
                return False
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

        # BTSTREAM_* names are applied after generic ones so they take precedence
        for env_name, cfg_path in sorted(
            ENV_MAPPINGS.items(), key=lambda item: item[0].startswith("BTSTREAM_")
        ):
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

    def apply_overrides(self, overrides: dict[str, Any]) -> Config:
        """Apply dotted-path overrides (e.g. from the CLI) and revalidate.

        `None` values are ignored so unset CLI options keep lower layers.
        """
        data = self.config.model_dump()
        for path, value in overrides.items():
            if value is None:
                continue
            section, _, key = path.partition(".")
            if section not in data or not key:
                msg = f"Unknown configuration option: {path}"
                raise ConfigurationError(msg)
            data[section][key] = value
        try:
            self.config = Config(**data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e
        return self.config

    def export(self) -> str:
        """Export current configuration as TOML."""
        return toml.dumps(self.config.model_dump(mode="json", exclude_none=True))

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(
    config_file: str | Path | None = None,
    *,
    configure_logging: bool = True,
) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file, configure_logging=configure_logging)
    return _config_manager


def reload_config() -> Config:
    """Reload configuration from file."""
    if _config_manager is None:
        msg = "Configuration not initialized"
        raise ConfigurationError(msg)

    _config_manager.config = _config_manager._load_config()  # noqa: SLF001
    _config_manager._setup_logging()  # noqa: SLF001
    logging.getLogger(__name__).info("Configuration reloaded")
    return _config_manager.config


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime.

    Reconfigures logging based on the new config.
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None, configure_logging=False)
    _config_manager.config = new_config
    _config_manager._setup_logging()  # noqa: SLF001

