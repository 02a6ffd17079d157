"""
keysync.utils - Utility module

Common utilities including logging configuration and path resolution.
"""

from keysync.utils.paths import (
    DEFAULT_CONFIG_DIR,
    resolve_config_dir,
    resolve_data_file,
)

__all__ = ["resolve_config_dir", "resolve_data_file", "DEFAULT_CONFIG_DIR"]
