"""Persistence backends for generated messages."""

from nudge_ai.core.interfaces import StorageError

from .sqlite import SqliteMessageStore

__all__ = ["SqliteMessageStore", "StorageError"]
