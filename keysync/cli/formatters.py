"""CLI output formatting functions.

This module contains functions for displaying sync results, conflicts
and pending changes on the command line.
"""

from typing import TYPE_CHECKING

import click

from keysync.sync.changes import ChangeType, get_changelog

if TYPE_CHECKING:
    from keysync.sync.changes import Change
    from keysync.sync.conflict import ConflictResolution
    from keysync.sync.engine import SyncResult

# Maximum number of items listed per section before truncating
MAX_LISTED = 10

CHANGE_COLORS = {
    ChangeType.CREATE: "green",
    ChangeType.UPDATE: "cyan",
    ChangeType.DELETE: "red",
}


def show_changelog(changes: list["Change"], limit: int = MAX_LISTED) -> None:
    """
    Print one 'Created: name' style line per change.

    Args:
        changes: Changes to list
        limit: Maximum number of lines before summarizing the rest
    """
    lines = get_changelog(changes)
    for change, line in zip(changes[:limit], lines[:limit]):
        click.echo(f"  {click.style(line, fg=CHANGE_COLORS[change.change_type])}")
    if len(lines) > limit:
        click.echo(f"  ... and {len(lines) - limit} more")


def describe_conflict(conflict: "ConflictResolution") -> str:
    """One-line description of a conflict and its resolution."""
    if conflict.deferred:
        return f"{conflict.name}: awaiting manual resolution"
    return f"{conflict.name}: {conflict.reason}"


def show_conflicts(conflicts: list["ConflictResolution"]) -> None:
    """
    Print every conflict with the version each side holds.

    Args:
        conflicts: Conflicts as returned by ConflictResolver.detect_conflicts
                   after resolution
    """
    if not conflicts:
        click.echo(click.style("No conflicts found.", fg="green"))
        return

    click.echo(f"{click.style('Conflicts:', fg='magenta')} {len(conflicts)}")
    for conflict in conflicts:
        local = conflict.local_record
        remote = conflict.remote_record
        click.echo(f"\n  Key: {conflict.name}")
        click.echo(
            f"    local:  type={local.key_type or '-'} "
            f"fingerprint={local.fingerprint or '-'} "
            f"updated={local.updated_at.isoformat() if local.updated_at else '-'}"
        )
        click.echo(
            f"    remote: type={remote.key_type or '-'} "
            f"fingerprint={remote.fingerprint or '-'} "
            f"updated={remote.updated_at.isoformat() if remote.updated_at else '-'}"
        )
        if conflict.deferred:
            click.echo(click.style("    Resolution: manual (deferred)", fg="yellow"))
        else:
            click.echo(f"    Resolution: {conflict.reason}")


def show_sync_result(result: "SyncResult", verbose: bool = False) -> None:
    """
    Display the outcome of a sync pass.

    Args:
        result: SyncResult returned by SyncEngine.sync
        verbose: Also list automatically resolved conflicts
    """
    click.echo("\n" + "=" * 50)
    click.echo(result.summary())
    click.echo("=" * 50)

    if result.has_changes():
        click.echo("\nChanges:")
        show_changelog(result.changes)

    if result.deferred:
        click.echo(
            click.style(
                f"\n{len(result.deferred)} conflict(s) need a manual decision:",
                fg="yellow",
            )
        )
        for conflict in result.deferred:
            click.echo(f"  ! {conflict.name}")
        click.echo("Re-run with --strategy local|remote|newer to resolve them.")

    resolved = [c for c in result.conflicts if not c.deferred]
    if resolved and verbose:
        click.echo("\n=== Conflicts Resolved ===")
        for conflict in resolved:
            click.echo(f"  {describe_conflict(conflict)}")
