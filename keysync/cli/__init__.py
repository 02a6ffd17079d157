"""CLI package for keysync."""

from keysync.cli.formatters import (
    describe_conflict,
    show_changelog,
    show_conflicts,
    show_sync_result,
)
from keysync.cli.main import (
    DEFAULT_CONFIG_FILE,
    VALID_DIRECTIONS,
    cli,
    get_config_dir,
)
from keysync.utils import DEFAULT_CONFIG_DIR

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "DEFAULT_CONFIG_FILE",
    "VALID_DIRECTIONS",
    "cli",
    "describe_conflict",
    "get_config_dir",
    "show_changelog",
    "show_conflicts",
    "show_sync_result",
]
