"""
Configuration file generator for keysync.

Produces the commented default config.yaml written by ``keysync init-config``.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate default YAML configuration with all options documented.

    Every option is commented out, so the generated file parses to an
    empty configuration and the built-in defaults apply.

    Returns:
        String containing YAML configuration with comments
    """
    return """# keysync Configuration
# =====================
#
# Default options for keysync. CLI arguments always override these values.
#
# To use this configuration:
#   1. Save as ~/.keysync/config.yaml (or $KEYSYNC_CONFIG_DIR/config.yaml)
#   2. Uncomment and modify options as needed

# Identity
# --------

# Identifier recorded in the sync history for this machine
# Default: the host name
# device_id: laptop


# Sync Behavior
# -------------

# Conflict resolution strategy when a key differs on both sides
# Options:
#   - local:  keep the local version
#   - remote: keep the remote version
#   - newer:  keep the version with the later updated_at (ties keep local)
#   - manual: leave the conflict unresolved for the user to decide
# Default: newer
# strategy: newer

# Default sync direction
# Options:
#   - pull: apply remote changes to the local keystore
#   - push: apply local changes to the remote record set
# Default: pull
# direction: pull

# Preview changes without writing anything
# Default: false
# dry_run: false


# Files
# -----

# Local keystore (relative paths resolve against the config directory)
# Default: keys.yaml
# keystore_file: keys.yaml

# Default remote record set used when --remote is not given
# remote_file: /mnt/shared/keys.yaml

# Sync history ledger
# Default: sync-history.json
# history_file: sync-history.json

# Maximum number of history entries kept (oldest are dropped)
# Default: 100
# history_max_entries: 100


# Logging
# -------

# Enable verbose output with detailed logging
# Default: false
# verbose: false

# Directory for daily log files
# Default: ~/.keysync/logs
# log_dir: /path/to/logs

# Number of log files to keep
# Default: 10
# log_retention_count: 10
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save default configuration file to specified path.

    Creates parent directories if they don't exist and saves
    the configuration with owner-only permissions.

    Args:
        config_path: Path where the config file should be saved
        overwrite: If True, overwrite existing file. If False, fail if file exists.

    Returns:
        Tuple of (success, error_message); error_message is None on success
    """
    config_path = Path(config_path).expanduser().resolve()

    if config_path.exists() and not overwrite:
        return (
            False,
            f"Configuration file already exists: {config_path}\n"
            "Use --force to overwrite.",
        )

    try:
        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        config_path.chmod(0o600)
    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)

    logger.info(f"Created configuration file: {config_path}")
    return (True, None)
