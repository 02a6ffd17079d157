"""
Path utilities for configuration directory resolution.

Provides consistent path resolution for the keysync configuration
directory across all modules.
"""

from __future__ import annotations

import os
from pathlib import Path

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".keysync"

# Environment variable for overriding config directory
CONFIG_DIR_ENV_VAR = "KEYSYNC_CONFIG_DIR"

# Well-known file names inside the configuration directory
HISTORY_FILE_NAME = "sync-history.json"
SNAPSHOT_DB_NAME = "snapshots.db"
KEYSTORE_FILE_NAME = "keys.yaml"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    """
    Resolve the configuration directory path.

    Priority:
        1. Explicit config_dir parameter (if provided)
        2. KEYSYNC_CONFIG_DIR environment variable
        3. Default directory (~/.keysync)

    Args:
        config_dir: Optional explicit configuration directory path.
                   Can be a Path object or string.

    Returns:
        Resolved Path to the configuration directory (expanduser and resolve applied)
    """
    if config_dir is not None:
        return Path(config_dir).expanduser().resolve()

    env_dir = os.environ.get(CONFIG_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser().resolve()

    return DEFAULT_CONFIG_DIR.expanduser().resolve()


def resolve_data_file(
    config_dir: Path, configured: str | None, default_name: str
) -> Path:
    """
    Resolve a data file location relative to the configuration directory.

    Absolute (or ~-prefixed) configured paths are used as-is; relative
    ones are taken relative to config_dir.
    """
    if configured:
        path = Path(configured).expanduser()
        if not path.is_absolute():
            path = config_dir / path
        return path
    return config_dir / default_name
