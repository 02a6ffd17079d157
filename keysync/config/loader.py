"""
Configuration loader module for key synchronization.

Provides YAML-based configuration file loading with support for:
- Loading configuration from default or custom paths
- Graceful handling of missing configuration files
- Validation of configuration structure and values
- Resolving the effective sync settings with CLI overrides
"""

import logging
import os
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from keysync.storage.history import DEFAULT_MAX_ENTRIES, SyncDirection
from keysync.sync.conflict import VALID_STRATEGIES, ConflictStrategy
from keysync.utils.paths import CONFIG_DIR_ENV_VAR, DEFAULT_CONFIG_DIR

# Default configuration file name
DEFAULT_CONFIG_FILE = "config.yaml"

# Default values for sync settings
DEFAULT_STRATEGY = ConflictStrategy.NEWER_WINS.value
DEFAULT_DIRECTION = SyncDirection.PULL.value
VALID_DIRECTIONS = tuple(direction.value for direction in SyncDirection)

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


class ConfigLoader:
    """
    YAML configuration file loader.

    Handles loading and validation of YAML configuration files for keysync.

    Attributes:
        config_dir: Directory containing the configuration file
        config_file: Name of the configuration file

    Usage:
        loader = ConfigLoader()
        config = loader.load_and_validate()

        # Load from specific file
        config = loader.load_from_file("/path/to/config.yaml")
    """

    def __init__(
        self, config_dir: Path | None = None, config_file: str = DEFAULT_CONFIG_FILE
    ):
        """
        Initialize the configuration loader.

        Args:
            config_dir: Directory containing the configuration file.
                       Defaults to ~/.keysync/ or $KEYSYNC_CONFIG_DIR
            config_file: Name of the configuration file (default: config.yaml)
        """
        if config_dir is not None:
            self.config_dir = Path(config_dir)
        else:
            env_dir = os.environ.get(CONFIG_DIR_ENV_VAR)
            self.config_dir = Path(env_dir) if env_dir else DEFAULT_CONFIG_DIR

        self.config_file = config_file

    def _get_config_path(self) -> Path:
        """Get the full path to the configuration file."""
        return self.config_dir / self.config_file

    def load(self) -> dict[str, Any]:
        """
        Load configuration from the default configuration file.

        Returns:
            Dictionary containing configuration values, or empty dict if file
            doesn't exist

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        return self.load_from_file(self._get_config_path())

    def load_from_file(self, path: Path | str) -> dict[str, Any]:
        """
        Load configuration from a specific file.

        Returns an empty dict if the file doesn't exist, allowing
        graceful operation with CLI defaults.

        Args:
            path: Path to the configuration file

        Returns:
            Dictionary containing configuration values

        Raises:
            ConfigError: If the configuration file exists but cannot be parsed
        """
        path = Path(path)

        if not path.exists():
            logger.debug(f"Configuration file not found: {path}")
            return {}

        try:
            with open(path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse YAML configuration file: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read configuration file: {e}") from e

        if config is None:
            logger.debug(f"Configuration file is empty: {path}")
            return {}

        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration file must contain a YAML dictionary, "
                f"got {type(config).__name__}"
            )

        logger.debug(f"Loaded configuration from {path}")
        return config

    def validate(self, config: dict[str, Any]) -> None:
        """
        Validate configuration structure and values.

        Args:
            config: Configuration dictionary to validate

        Raises:
            ConfigError: If configuration is invalid
        """
        if not isinstance(config, dict):
            raise ConfigError(
                f"Configuration must be a dictionary, got {type(config).__name__}"
            )

        valid_keys: dict[str, type[Any]] = {
            "device_id": str,
            "strategy": str,
            "direction": str,
            "history_max_entries": int,
            "keystore_file": str,
            "remote_file": str,
            "history_file": str,
            "verbose": bool,
            "dry_run": bool,
            "log_dir": str,
            "log_retention_count": int,
        }

        for key, value in config.items():
            if key not in valid_keys:
                logger.debug(f"Ignoring unknown configuration key: {key}")
                continue
            expected_type = valid_keys[key]
            # bool is a subclass of int; reject it for integer settings
            if not isinstance(value, expected_type) or (
                expected_type is int and isinstance(value, bool)
            ):
                raise ConfigError(
                    f"Invalid type for '{key}': expected {expected_type.__name__}, "
                    f"got {type(value).__name__}"
                )

        if "strategy" in config and config["strategy"] not in VALID_STRATEGIES:
            raise ConfigError(
                f"Invalid strategy '{config['strategy']}'. "
                f"Must be one of: {', '.join(VALID_STRATEGIES)}"
            )

        if "direction" in config and config["direction"] not in VALID_DIRECTIONS:
            raise ConfigError(
                f"Invalid direction '{config['direction']}'. "
                f"Must be one of: {', '.join(VALID_DIRECTIONS)}"
            )

        if "history_max_entries" in config and config["history_max_entries"] < 1:
            raise ConfigError(
                f"history_max_entries must be >= 1, "
                f"got {config['history_max_entries']}"
            )

        if "log_retention_count" in config and config["log_retention_count"] < 0:
            raise ConfigError(
                f"log_retention_count must be >= 0, "
                f"got {config['log_retention_count']}"
            )

        if "device_id" in config and not config["device_id"].strip():
            raise ConfigError("device_id cannot be empty")

    def load_and_validate(self) -> dict[str, Any]:
        """
        Load configuration and validate it.

        Returns:
            Validated configuration dictionary

        Raises:
            ConfigError: If configuration cannot be loaded or is invalid
        """
        config = self.load()
        if config:
            self.validate(config)
        return config


@dataclass
class SyncSettings:
    """
    Effective sync settings after merging config file and CLI options.

    Attributes:
        device_id: Identifier of this machine
        strategy: Validated conflict strategy
        direction: push or pull
        history_max_entries: Ledger retention limit
    """

    device_id: str
    strategy: ConflictStrategy
    direction: SyncDirection
    history_max_entries: int = DEFAULT_MAX_ENTRIES


def default_device_id() -> str:
    """Best-effort identifier for this machine."""
    return socket.gethostname() or "local"


def resolve_settings(
    config: dict[str, Any],
    strategy: Optional[str] = None,
    direction: Optional[str] = None,
    device_id: Optional[str] = None,
) -> SyncSettings:
    """
    Merge config values with CLI overrides. CLI values take precedence.

    Raises:
        ConfigError: If the strategy or direction is invalid
    """
    strategy_name = strategy or config.get("strategy", DEFAULT_STRATEGY)
    try:
        conflict_strategy = ConflictStrategy.from_string(strategy_name)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    direction_name = direction or config.get("direction", DEFAULT_DIRECTION)
    if direction_name not in VALID_DIRECTIONS:
        raise ConfigError(
            f"Invalid direction '{direction_name}'. "
            f"Must be one of: {', '.join(VALID_DIRECTIONS)}"
        )

    return SyncSettings(
        device_id=device_id or config.get("device_id") or default_device_id(),
        strategy=conflict_strategy,
        direction=SyncDirection(direction_name),
        history_max_entries=config.get("history_max_entries", DEFAULT_MAX_ENTRIES),
    )
