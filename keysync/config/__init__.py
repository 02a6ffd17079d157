"""
keysync.config - Configuration management module

Contains configuration loading, validation, and default settings.
"""

from keysync.config.generator import generate_default_config, save_config_file
from keysync.config.loader import (
    DEFAULT_CONFIG_FILE,
    ConfigError,
    ConfigLoader,
    SyncSettings,
    resolve_settings,
)

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "DEFAULT_CONFIG_FILE",
    "SyncSettings",
    "generate_default_config",
    "resolve_settings",
    "save_config_file",
]
