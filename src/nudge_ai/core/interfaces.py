"""Protocol interfaces for decoupling components."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol

from .models import (
    GeneratedMessage,
    GenerationRecord,
    MessageCategory,
    StorageStatistics,
)


class StorageError(RuntimeError):
    """Raised when the local message store cannot complete an operation."""


class RemoteGenerationClient(Protocol):
    """Remote call interface consumed by the orchestrator.

    Implementations raise :class:`nudge_ai.transport.RemoteError` for every
    failure so that callers can classify it.
    """

    @property
    def provider_id(self) -> str:
        """Identifier describing the backing service."""
        raise NotImplementedError

    async def send(self, request: Any) -> Mapping[str, Any]:
        """Send ``request`` and return the decoded response payload."""
        raise NotImplementedError


class MessageStore(Protocol):
    """Abstraction for generated-message persistence."""

    def save(self, message: GeneratedMessage) -> None:
        """Insert or replace the stored record for ``message``."""
        raise NotImplementedError

    def save_many(self, messages: Sequence[GeneratedMessage]) -> None:
        """Persist several messages in one transaction."""
        raise NotImplementedError

    def delete(self, message_id: str) -> bool:
        """Remove a message and its markers. Returns ``True`` if deleted."""
        raise NotImplementedError

    def load_message(self, message_id: str) -> GeneratedMessage | None:
        """Return a single message by id."""
        raise NotImplementedError

    def toggle_favorite(self, message_id: str) -> bool:
        """Flip the favourite flag, returning the new state."""
        raise NotImplementedError

    def load_favorites(self, limit: int = 50) -> list[GeneratedMessage]:
        """Return favourited messages, newest first."""
        raise NotImplementedError

    def load_recent(self, limit: int = 20) -> list[GeneratedMessage]:
        """Return the newest messages."""
        raise NotImplementedError

    def load_by_category(
        self, category: MessageCategory, limit: int = 10
    ) -> list[GeneratedMessage]:
        """Return the newest messages in ``category``."""
        raise NotImplementedError

    def search(self, query: str, limit: int = 20) -> list[GeneratedMessage]:
        """Return messages whose content, category or tone matches ``query``."""
        raise NotImplementedError

    def save_generation_record(self, record: GenerationRecord) -> None:
        """Append a generation record."""
        raise NotImplementedError

    def statistics(self) -> StorageStatistics:
        """Compute aggregate statistics from current records."""
        raise NotImplementedError

    def optimize(self) -> None:
        """Repair markers, purge deleted rows and apply retention caps."""
        raise NotImplementedError

    def cleanup_older_than(self, cutoff: datetime) -> int:
        """Delete messages and records created before ``cutoff``."""
        raise NotImplementedError

    def clear_all(self) -> None:
        """Remove every stored message, marker and record."""
        raise NotImplementedError


class UserChangeListener(Protocol):
    """Component that reacts to sign-in, sign-out or account switches."""

    def on_user_changed(self, user_id: str | None) -> None:
        """Handle a change of the active user (``None`` on sign-out)."""
        raise NotImplementedError


__all__ = [
    "MessageStore",
    "RemoteGenerationClient",
    "StorageError",
    "UserChangeListener",
]
