"""
Entry point for running keysync as a module.

Usage:
    python -m keysync --help
    python -m keysync status
    python -m keysync sync --remote remote-keys.yaml --dry-run
"""

from keysync.cli import cli

if __name__ == "__main__":
    cli()
