"""
Command-line interface for keysync.

Provides CLI commands for synchronizing an SSH key inventory with a remote
record set, inspecting conflicts and browsing the sync history.

Usage:
    # Show help
    keysync --help

    # Check pending changes against the last known remote snapshot
    keysync status

    # Run synchronization
    keysync sync --remote /mnt/shared/keys.yaml
    keysync sync --remote /mnt/shared/keys.yaml --direction push --dry-run

    # Browse history
    keysync history --limit 5
"""

import sys
from pathlib import Path

import click

from keysync import __version__
from keysync.cli.formatters import show_changelog, show_conflicts, show_sync_result
from keysync.config.generator import save_config_file
from keysync.config.loader import DEFAULT_CONFIG_FILE as CONFIG_FILE_NAME
from keysync.config.loader import (
    ConfigError,
    ConfigLoader,
    default_device_id,
    resolve_settings,
)
from keysync.storage.db import SnapshotDatabase
from keysync.storage.errors import PersistenceError
from keysync.storage.history import (
    DEFAULT_MAX_ENTRIES,
    HistoryFilter,
    SyncDirection,
    SyncHistory,
    format_history,
    format_stats,
)
from keysync.storage.keystore import RecordStore
from keysync.sync.changes import REMOTE_PARTY_ID, SyncManager
from keysync.sync.conflict import VALID_STRATEGIES, ConflictResolver, ConflictStrategy
from keysync.sync.engine import SyncEngine
from keysync.utils import DEFAULT_CONFIG_DIR, resolve_config_dir, resolve_data_file
from keysync.utils.logging import cleanup_old_logs, get_logger, setup_logging
from keysync.utils.paths import (
    HISTORY_FILE_NAME,
    KEYSTORE_FILE_NAME,
    SNAPSHOT_DB_NAME,
)

# Default configuration file
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / CONFIG_FILE_NAME

VALID_DIRECTIONS = tuple(direction.value for direction in SyncDirection)


def get_config_dir(config_dir: str | None) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def get_config_file(config_file: str | None, config_dir: Path) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file).expanduser()
    return config_dir / CONFIG_FILE_NAME


def get_keystore(ctx: click.Context) -> RecordStore:
    """Local keystore configured for this invocation."""
    config = ctx.obj["config"]
    path = resolve_data_file(
        ctx.obj["config_dir"], config.get("keystore_file"), KEYSTORE_FILE_NAME
    )
    return RecordStore(path)


def get_history(
    ctx: click.Context, max_entries: int = DEFAULT_MAX_ENTRIES
) -> SyncHistory:
    """
    Open and load the sync history ledger.

    max_entries only matters when entries are added; readers keep the default.

    Raises:
        PersistenceError: If an existing history file cannot be read
    """
    config = ctx.obj["config"]
    path = resolve_data_file(
        ctx.obj["config_dir"], config.get("history_file"), HISTORY_FILE_NAME
    )
    history = SyncHistory(path, max_entries=max_entries)
    history.load()
    return history


def get_snapshot_db(ctx: click.Context) -> SnapshotDatabase:
    """Open (and create if needed) the snapshot cache."""
    config_dir: Path = ctx.obj["config_dir"]
    config_dir.mkdir(parents=True, mode=0o700, exist_ok=True)
    db = SnapshotDatabase(str(config_dir / SNAPSHOT_DB_NAME))
    db.initialize()
    return db


def get_remote_store(ctx: click.Context, remote: str | None) -> RecordStore:
    """
    Remote record set from --remote or the remote_file config key.

    Raises:
        click.UsageError: If neither is given
    """
    remote_path = remote or ctx.obj["config"].get("remote_file")
    if not remote_path:
        raise click.UsageError(
            "No remote record file given. Use --remote or set remote_file "
            "in the configuration file."
        )
    return RecordStore(remote_path)


def require_valid_config(ctx: click.Context) -> None:
    """Exit with status 1 if the configuration file failed to load or validate."""
    config_error = ctx.obj.get("config_error")
    if config_error is not None:
        click.echo(
            click.style(f"Error: Configuration error: {config_error}", fg="red"),
            err=True,
        )
        click.echo(f"Fix {ctx.obj['config_file']} and try again.", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="keysync")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="KEYSYNC_CONFIG_DIR",
    help="Configuration directory path (default: ~/.keysync).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="KEYSYNC_CONFIG_FILE",
    help="Configuration file path (default: <config-dir>/config.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: str | None,
    config_file: str | None,
) -> None:
    """
    SSH key inventory synchronization.

    Keeps a local key inventory and a remote record set in step, resolving
    keys that changed on both sides with a configurable strategy.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = get_config_dir(config_dir)
    resolved_config_file = get_config_file(config_file, resolved_config_dir)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    config = {}
    config_error = None
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        # Read-only commands keep going with CLI defaults; sync and conflicts refuse
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}
        config_error = e

    ctx.obj["config"] = config
    ctx.obj["config_error"] = config_error

    # CLI flag takes precedence over config file
    effective_verbose = verbose or config.get("verbose", False)
    ctx.obj["verbose"] = effective_verbose

    log_dir = (
        Path(config["log_dir"]).expanduser()
        if config.get("log_dir")
        else resolved_config_dir / "logs"
    )
    setup_logging(verbose=effective_verbose, log_dir=log_dir, enable_file_logging=True)

    log_retention = config.get("log_retention_count", 10)
    if log_retention > 0:
        cleanup_old_logs(log_dir=log_dir, keep_count=log_retention)


# =============================================================================
# Status Command
# =============================================================================


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """
    Show pending changes since the last sync.

    Rebuilds the local snapshot from the keystore and compares it with the
    remote snapshot cached by the last sync.

    Example:

        keysync status
    """
    logger = get_logger(__name__)
    config_dir: Path = ctx.obj["config_dir"]
    config = ctx.obj["config"]

    try:
        store = get_keystore(ctx)
        records = store.load()

        click.echo("=== keysync Status ===\n")
        click.echo(f"Configuration directory: {config_dir}")
        click.echo(f"Keystore: {store.path} ({len(records)} key(s))")

        history = get_history(ctx)
        stats = history.get_stats()
        if stats.has_synced:
            click.echo(f"Last sync: {stats.last_sync_time.isoformat()}")
        else:
            click.echo("Last sync: Never")
        click.echo()

        db_path = config_dir / SNAPSHOT_DB_NAME
        cached = None
        if db_path.exists():
            db = SnapshotDatabase(str(db_path))
            db.initialize()
            cached = db.load_state(REMOTE_PARTY_ID)

        if cached is None:
            click.echo(click.style("No remote snapshot cached yet.", fg="yellow"))
            click.echo("Run 'keysync sync --remote FILE' to synchronize.")
            return

        manager = SyncManager(config.get("device_id") or default_device_id())
        manager.update_local_state(records)
        manager.update_remote_state(cached)
        changes = manager.detect_changes(records)

        if not changes:
            click.echo(click.style("Everything is up to date.", fg="green"))
            return

        click.echo(f"Pending changes ({len(changes)}):")
        show_changelog(changes, limit=len(changes))

    except Exception as e:
        logger.exception(f"Error getting status: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Init-Config Command
# =============================================================================


@cli.command("init-config")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration file if it exists.",
)
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Generate a default configuration file.

    Creates a configuration file with all available options documented
    and commented out.

    Examples:

        # Create config file (fails if already exists)
        keysync init-config

        # Overwrite existing config file
        keysync init-config --force
    """
    logger = get_logger(__name__)
    config_file = ctx.obj["config_file"]

    click.echo(f"Creating configuration file: {config_file}")

    success, error = save_config_file(config_file, overwrite=force)

    if success:
        click.echo(click.style("Configuration file created successfully!", fg="green"))
        click.echo(f"\nLocation: {config_file}")
        click.echo("\nNext steps:")
        click.echo("1. Edit the file to uncomment and configure desired options")
        click.echo("2. Run 'keysync --help' to see available commands")
    else:
        click.echo(click.style(f"Error: {error}", fg="red"), err=True)
        logger.error(f"Failed to create configuration file: {error}")
        sys.exit(1)


# =============================================================================
# Sync Command
# =============================================================================


@cli.command("sync")
@click.option(
    "--remote",
    "-r",
    type=click.Path(dir_okay=False),
    help="Remote record file (default: remote_file from config).",
)
@click.option(
    "--direction",
    "-d",
    type=click.Choice(VALID_DIRECTIONS, case_sensitive=False),
    help="pull applies remote changes locally, push the reverse (default: pull).",
)
@click.option(
    "--strategy",
    "-s",
    help=f"Conflict resolution strategy: {', '.join(VALID_STRATEGIES)} "
    "(default: newer).",
)
@click.option(
    "--dry-run", "-n", is_flag=True, help="Preview changes without applying them."
)
@click.pass_context
def sync_command(
    ctx: click.Context,
    remote: str | None,
    direction: str | None,
    strategy: str | None,
    dry_run: bool,
) -> None:
    """
    Synchronize the local keystore with a remote record file.

    Keys only on the source side are created on the target, keys only on
    the target are deleted, and keys that differ on both sides are resolved
    with the configured strategy. Conflicts under the manual strategy are
    left untouched and listed.

    Examples:

        # Preview a pull
        keysync sync --remote /mnt/shared/keys.yaml --dry-run

        # Push local keys, remote edits always win conflicts
        keysync sync --remote /mnt/shared/keys.yaml --direction push -s remote
    """
    logger = get_logger(__name__)
    config = ctx.obj["config"]
    verbose = ctx.obj["verbose"]

    # Invalid strategy or direction fails before anything is touched
    require_valid_config(ctx)
    try:
        settings = resolve_settings(config, strategy=strategy, direction=direction)
    except ConfigError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    effective_dry_run = dry_run or config.get("dry_run", False)
    remote_store = get_remote_store(ctx, remote)

    try:
        local_store = get_keystore(ctx)
        history = (
            None
            if effective_dry_run
            else get_history(ctx, max_entries=settings.history_max_entries)
        )
        snapshot_db = None if effective_dry_run else get_snapshot_db(ctx)

        engine = SyncEngine(
            settings.device_id,
            settings.strategy,
            history=history,
            snapshot_db=snapshot_db,
        )

        try:
            local_records = local_store.load()
            remote_records = remote_store.load()
        except PersistenceError as e:
            if not effective_dry_run:
                engine.record_failure(settings.direction, str(e))
            raise

        mode = "Analyzing" if effective_dry_run else "Synchronizing"
        click.echo(
            f"{mode} ({settings.direction.value}, strategy: "
            f"{settings.strategy.value}) with {remote_store.path}..."
        )

        target = (
            remote_store if settings.direction == SyncDirection.PUSH else local_store
        )
        result = engine.sync(
            local_records,
            remote_records,
            settings.direction,
            dry_run=effective_dry_run,
            target_store=target,
        )

        show_sync_result(result, verbose=verbose)

        if not result.has_changes():
            click.echo(
                click.style("\nAlready in sync. No changes needed.", fg="green")
            )
        elif effective_dry_run:
            click.echo(
                click.style("\nDry run complete. No changes were made.", fg="yellow")
            )
            click.echo("Run without --dry-run to apply these changes.")
        else:
            click.echo(click.style("\nSync completed successfully!", fg="green"))
            click.echo(f"Updated {target.path}")

    except Exception as e:
        logger.exception(f"Sync failed: {e}")
        click.echo(click.style(f"\nSync failed: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Conflicts Command
# =============================================================================


@cli.command("conflicts")
@click.option(
    "--remote",
    "-r",
    type=click.Path(dir_okay=False),
    help="Remote record file (default: remote_file from config).",
)
@click.option(
    "--strategy",
    "-s",
    help=f"Strategy to preview: {', '.join(VALID_STRATEGIES)} (default: newer).",
)
@click.pass_context
def conflicts_command(
    ctx: click.Context, remote: str | None, strategy: str | None
) -> None:
    """
    List keys that differ on both sides and how they would be resolved.

    Nothing is written.

    Example:

        keysync conflicts --remote /mnt/shared/keys.yaml --strategy newer
    """
    logger = get_logger(__name__)
    config = ctx.obj["config"]

    require_valid_config(ctx)
    try:
        conflict_strategy = ConflictStrategy.from_string(
            strategy or config.get("strategy", ConflictStrategy.NEWER_WINS.value)
        )
    except ValueError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    remote_store = get_remote_store(ctx, remote)

    try:
        local_records = get_keystore(ctx).load()
        remote_records = remote_store.load()

        resolver = ConflictResolver(conflict_strategy)
        conflicts = resolver.detect_conflicts(local_records, remote_records)
        resolver.resolve_all(conflicts)

        click.echo(f"Strategy: {conflict_strategy.value}\n")
        show_conflicts(conflicts)

    except Exception as e:
        logger.exception(f"Failed to list conflicts: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# History Commands
# =============================================================================


@cli.command("history")
@click.option(
    "--limit",
    "-l",
    type=click.IntRange(min=1),
    default=10,
    show_default=True,
    help="Number of entries to show.",
)
@click.option("--device", help="Only show entries recorded by this device.")
@click.pass_context
def history_command(ctx: click.Context, limit: int, device: str | None) -> None:
    """
    Show recent sync history and statistics.

    Examples:

        keysync history
        keysync history --limit 5 --device laptop
    """
    logger = get_logger(__name__)

    try:
        history = get_history(ctx)

        if device:
            entries = history.query(HistoryFilter(device_id=device))[:limit]
        else:
            entries = history.get_recent(limit)

        click.echo(format_history(entries))
        if len(history):
            click.echo()
            click.echo(format_stats(history.get_stats()))

    except Exception as e:
        logger.exception(f"Failed to read history: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


@cli.command("clear-history")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def clear_history_command(ctx: click.Context, yes: bool) -> None:
    """
    Delete all sync history entries.

    Example:

        keysync clear-history --yes
    """
    logger = get_logger(__name__)

    try:
        history = get_history(ctx)
    except PersistenceError as e:
        logger.exception(f"Failed to read history: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    if not len(history):
        click.echo("No sync history found. Nothing to clear.")
        return

    if not yes:
        click.confirm(
            f"This will delete {len(history)} sync history entries.\nContinue?",
            abort=True,
        )

    try:
        history.clear()
        click.echo(click.style("Sync history cleared.", fg="green"))
    except Exception as e:
        logger.exception(f"Clear history failed: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)
