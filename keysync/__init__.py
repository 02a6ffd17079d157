"""
keysync - two-party synchronization of SSH key metadata.

Reconciles a local key record set against a remote copy, resolves
conflicts by configurable strategy and keeps a history of every sync.
"""

__version__ = "0.1.0"
