"""SQLite-backed message store implementation."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from types import TracebackType
from typing import Any

from pydantic import JsonValue, TypeAdapter, ValidationError

from nudge_ai.core.config import StorageSettings
from nudge_ai.core.datetime_utils import parse_datetime, serialize_datetime, utc_now
from nudge_ai.core.interfaces import MessageStore, StorageError
from nudge_ai.core.models import (
    GeneratedMessage,
    GenerationRecord,
    MessageCategory,
    MessageContext,
    MessageImpact,
    MessageOrigin,
    MessageTone,
    StorageStatistics,
    TimeOfDay,
)

LOGGER = logging.getLogger(__name__)

FAVORITE_CATEGORIES_KEY = "favorite_categories"
MEMORY_DATABASE = ":memory:"

_JSON_ADAPTER: TypeAdapter[JsonValue] = TypeAdapter(JsonValue)

_MESSAGE_COLUMNS = """
    m.id,
    m.content,
    m.category,
    m.tone,
    m.impact_rank,
    m.origin,
    m.personality_match,
    m.time_of_day,
    m.recent_context,
    m.special_occasion,
    m.partner_name,
    m.personality_type,
    m.relationship_duration,
    m.generated_at
"""


# pylint: disable=too-many-public-methods
class SqliteMessageStore(MessageStore):
    """Persist generated messages, markers and generation records in SQLite.

    Deleting a message only flags the row; :meth:`optimize` reclaims the
    space. Every write runs in its own transaction under an instance lock so
    concurrent callers never lose updates.
    """

    def __init__(
        self,
        settings: StorageSettings,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Open the database and apply migrations."""
        self._settings = settings
        self._clock = clock
        self._lock = threading.RLock()
        target = str(settings.db_path)
        if target != MEMORY_DATABASE:
            Path(target).parent.mkdir(parents=True, exist_ok=True)
        try:
            self._connection = sqlite3.connect(target, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.create_function(
                "casefold", 1, _casefold, deterministic=True
            )
            self._apply_migrations()
            self._ensure_indexes()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open message store at {target}: {exc}") from exc

    # Context manager helpers -------------------------------------------------
    def __enter__(self) -> SqliteMessageStore:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # Messages ----------------------------------------------------------------
    def save(self, message: GeneratedMessage) -> None:
        """Insert or replace the stored record for ``message``."""
        self.save_many([message])

    def save_many(self, messages: Sequence[GeneratedMessage]) -> None:
        """Persist ``messages`` in a single transaction."""
        if not messages:
            return
        saved_at = serialize_datetime(self._clock())
        rows = [_message_row(message, saved_at) for message in messages]
        with self._guard("saving messages", write=True):
            self._connection.executemany(
                """
                INSERT INTO messages (
                    id,
                    content,
                    category,
                    tone,
                    impact_rank,
                    origin,
                    personality_match,
                    time_of_day,
                    recent_context,
                    special_occasion,
                    partner_name,
                    personality_type,
                    relationship_duration,
                    generated_at,
                    saved_at,
                    deleted_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, NULL)
                ON CONFLICT(id) DO UPDATE SET
                    content=excluded.content,
                    category=excluded.category,
                    tone=excluded.tone,
                    impact_rank=excluded.impact_rank,
                    origin=excluded.origin,
                    personality_match=excluded.personality_match,
                    time_of_day=excluded.time_of_day,
                    recent_context=excluded.recent_context,
                    special_occasion=excluded.special_occasion,
                    partner_name=excluded.partner_name,
                    personality_type=excluded.personality_type,
                    relationship_duration=excluded.relationship_duration,
                    generated_at=excluded.generated_at,
                    saved_at=excluded.saved_at,
                    deleted_at=NULL
                """,
                rows,
            )
        LOGGER.debug("Saved %d messages", len(rows))

    def delete(self, message_id: str) -> bool:
        """Flag a message as deleted and drop its favourite/shared markers."""
        now = serialize_datetime(self._clock())
        with self._guard("deleting a message", write=True):
            cursor = self._connection.execute(
                "UPDATE messages SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (now, message_id),
            )
            self._connection.execute(
                "DELETE FROM favorites WHERE message_id = ?", (message_id,)
            )
            self._connection.execute(
                "DELETE FROM shared_messages WHERE message_id = ?", (message_id,)
            )
        deleted = cursor.rowcount > 0
        if deleted:
            LOGGER.debug("Deleted message %s", message_id)
        return deleted

    def load_message(self, message_id: str) -> GeneratedMessage | None:
        with self._guard("loading a message"):
            row = self._connection.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages m "
                "WHERE m.id = ? AND m.deleted_at IS NULL",
                (message_id,),
            ).fetchone()
        return _row_to_message(row) if row is not None else None

    def load_recent(self, limit: int = 20) -> list[GeneratedMessage]:
        return self._select_messages("", (), limit)

    def load_by_category(
        self, category: MessageCategory, limit: int = 10
    ) -> list[GeneratedMessage]:
        return self.load_by_categories([category], limit)

    def load_by_categories(
        self, categories: Sequence[MessageCategory], limit: int = 20
    ) -> list[GeneratedMessage]:
        """Newest messages belonging to any of ``categories``."""
        values = [MessageCategory.parse(category).value for category in categories]
        if not values:
            return []
        placeholders = ", ".join("?" for _ in values)
        return self._select_messages(
            f"AND m.category IN ({placeholders})", tuple(values), limit
        )

    def search(self, query: str, limit: int = 20) -> list[GeneratedMessage]:
        """Case-insensitive match on content, category label and tone label."""
        needle = query.strip().casefold()
        categories = [c.value for c in MessageCategory if needle in c.label.casefold()]
        tones = [t.value for t in MessageTone if needle in t.label.casefold()]

        clauses = ["casefold(m.content) LIKE ? ESCAPE '\\'"]
        params: list[Any] = [f"%{_escape_like(needle)}%"]
        if categories:
            clauses.append(f"m.category IN ({', '.join('?' for _ in categories)})")
            params.extend(categories)
        if tones:
            clauses.append(f"m.tone IN ({', '.join('?' for _ in tones)})")
            params.extend(tones)
        return self._select_messages(f"AND ({' OR '.join(clauses)})", tuple(params), limit)

    # Favourites and sharing ----------------------------------------------------
    def toggle_favorite(self, message_id: str) -> bool:
        """Flip the favourite flag for ``message_id`` and return the new state."""
        now = serialize_datetime(self._clock())
        with self._guard("toggling a favourite", write=True):
            if not self._exists(message_id):
                raise ValueError(f"Unknown message id: {message_id}")
            cursor = self._connection.execute(
                "DELETE FROM favorites WHERE message_id = ?", (message_id,)
            )
            if cursor.rowcount > 0:
                return False
            self._connection.execute(
                "INSERT INTO favorites (message_id, favorited_at) VALUES (?, ?)",
                (message_id, now),
            )
            return True

    def is_favorite(self, message_id: str) -> bool:
        with self._guard("reading favourites"):
            row = self._connection.execute(
                "SELECT 1 FROM favorites WHERE message_id = ?", (message_id,)
            ).fetchone()
        return row is not None

    def load_favorites(self, limit: int = 50) -> list[GeneratedMessage]:
        with self._guard("loading favourites"):
            rows = self._connection.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS}
                FROM favorites f
                JOIN messages m ON m.id = f.message_id
                WHERE m.deleted_at IS NULL
                ORDER BY f.favorited_at DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [_row_to_message(row) for row in rows]

    def mark_shared(self, message_id: str) -> None:
        now = serialize_datetime(self._clock())
        with self._guard("marking a message shared", write=True):
            if not self._exists(message_id):
                raise ValueError(f"Unknown message id: {message_id}")
            self._connection.execute(
                """
                INSERT INTO shared_messages (message_id, shared_at) VALUES (?, ?)
                ON CONFLICT(message_id) DO UPDATE SET shared_at = excluded.shared_at
                """,
                (message_id, now),
            )

    def is_shared(self, message_id: str) -> bool:
        with self._guard("reading shared markers"):
            row = self._connection.execute(
                "SELECT 1 FROM shared_messages WHERE message_id = ?", (message_id,)
            ).fetchone()
        return row is not None

    # Generation records ------------------------------------------------------
    def save_generation_record(self, record: GenerationRecord) -> None:
        with self._guard("saving a generation record", write=True):
            self._connection.execute(
                """
                INSERT INTO generation_records (
                    id,
                    category,
                    time_of_day,
                    had_context,
                    had_special_occasion,
                    messages_generated,
                    average_impact,
                    origin,
                    created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.category.value,
                    record.time_of_day.value,
                    int(record.had_context),
                    int(record.had_special_occasion),
                    record.messages_generated,
                    record.average_impact,
                    record.origin.value,
                    serialize_datetime(record.created_at),
                ),
            )

    def load_generation_history(self, limit: int = 100) -> list[GenerationRecord]:
        """Newest generation records first."""
        with self._guard("loading generation history"):
            rows = self._connection.execute(
                """
                SELECT id, category, time_of_day, had_context, had_special_occasion,
                       messages_generated, average_impact, origin, created_at
                FROM generation_records
                ORDER BY created_at DESC
                LIMIT ?
                """,
                (limit,),
            ).fetchall()
        return [
            GenerationRecord(
                category=MessageCategory(row["category"]),
                time_of_day=TimeOfDay(row["time_of_day"]),
                had_context=bool(row["had_context"]),
                had_special_occasion=bool(row["had_special_occasion"]),
                messages_generated=row["messages_generated"],
                average_impact=row["average_impact"],
                origin=MessageOrigin(row["origin"]),
                created_at=_required_datetime(row["created_at"]),
                id=row["id"],
            )
            for row in rows
        ]

    # Maintenance -------------------------------------------------------------
    def statistics(self) -> StorageStatistics:
        """Aggregate counts computed in SQL from the current rows."""
        with self._guard("computing statistics"):
            totals = self._connection.execute(
                """
                SELECT COUNT(*) AS total, MIN(generated_at) AS oldest,
                       MAX(generated_at) AS newest
                FROM messages WHERE deleted_at IS NULL
                """
            ).fetchone()
            favorites = self._connection.execute(
                """
                SELECT COUNT(*) FROM favorites f
                JOIN messages m ON m.id = f.message_id
                WHERE m.deleted_at IS NULL
                """
            ).fetchone()[0]
            per_category = self._connection.execute(
                """
                SELECT category, COUNT(*) AS total FROM messages
                WHERE deleted_at IS NULL GROUP BY category
                """
            ).fetchall()
            records = self._connection.execute(
                "SELECT COUNT(*) AS total, AVG(messages_generated) AS average "
                "FROM generation_records"
            ).fetchone()
            page_count = self._connection.execute("PRAGMA page_count").fetchone()[0]
            page_size = self._connection.execute("PRAGMA page_size").fetchone()[0]

        counts: dict[MessageCategory, int] = {}
        for row in per_category:
            try:
                counts[MessageCategory(row["category"])] = row["total"]
            except ValueError:
                LOGGER.warning("Ignoring unknown stored category %r", row["category"])
        return StorageStatistics(
            total_messages=totals["total"],
            favorite_messages=favorites,
            messages_per_category=counts,
            storage_bytes=page_count * page_size,
            oldest_message_at=parse_datetime(totals["oldest"]),
            newest_message_at=parse_datetime(totals["newest"]),
            generation_records=records["total"],
            average_messages_per_generation=float(records["average"] or 0.0),
        )

    def optimize(self) -> None:
        """Purge deleted rows, apply retention caps and repair markers."""
        cutoff = serialize_datetime(
            self._clock() - timedelta(days=self._settings.max_message_age_days)
        )
        with self._guard("optimising storage", write=True):
            purged = self._connection.execute(
                "DELETE FROM messages WHERE deleted_at IS NOT NULL"
            ).rowcount
            aged = self._connection.execute(
                """
                DELETE FROM messages
                WHERE generated_at < ?
                  AND id NOT IN (SELECT message_id FROM favorites)
                """,
                (cutoff,),
            ).rowcount
            overflow = self._connection.execute(
                """
                DELETE FROM messages WHERE id IN (
                    SELECT id FROM messages
                    WHERE id NOT IN (SELECT message_id FROM favorites)
                    ORDER BY generated_at DESC, saved_at DESC
                    LIMIT -1 OFFSET ?
                )
                """,
                (self._settings.max_stored_messages,),
            ).rowcount
            self._connection.execute(
                """
                DELETE FROM generation_records WHERE id IN (
                    SELECT id FROM generation_records
                    ORDER BY created_at DESC
                    LIMIT -1 OFFSET ?
                )
                """,
                (self._settings.max_generation_records,),
            )
            orphans = self._remove_orphaned_markers()
        with self._guard("compacting the database"):
            self._connection.execute("VACUUM")
        LOGGER.info(
            "Storage optimised: purged=%d aged_out=%d over_cap=%d orphaned_markers=%d",
            purged,
            aged,
            overflow,
            orphans,
        )

    def cleanup_older_than(self, cutoff: datetime) -> int:
        """Remove messages generated and records created before ``cutoff``."""
        boundary = serialize_datetime(cutoff)
        with self._guard("cleaning up old records", write=True):
            removed = self._connection.execute(
                "DELETE FROM messages WHERE generated_at < ?", (boundary,)
            ).rowcount
            self._connection.execute(
                "DELETE FROM generation_records WHERE created_at < ?", (boundary,)
            )
            self._remove_orphaned_markers()
        LOGGER.info("Removed %d messages older than %s", removed, boundary)
        return removed

    def clear_all(self) -> None:
        """Delete every message, marker and generation record."""
        LOGGER.info("Clearing all stored messages")
        with self._guard("clearing storage", write=True):
            self._connection.execute("DELETE FROM favorites")
            self._connection.execute("DELETE FROM shared_messages")
            self._connection.execute("DELETE FROM generation_records")
            self._connection.execute("DELETE FROM messages")

    def on_user_changed(self, user_id: str | None) -> None:
        """Wipe stored content for the previous user when configured to."""
        if not self._settings.clear_on_user_change:
            return
        LOGGER.info("Active user changed (%s); clearing stored content", user_id or "signed out")
        self.clear_all()
        with self._guard("clearing preferences", write=True):
            self._connection.execute("DELETE FROM user_preferences")

    # User preferences --------------------------------------------------------
    def get_preference(self, key: str, default: JsonValue = None) -> JsonValue:
        """Return the JSON value stored under ``key``."""
        with self._guard("reading a preference"):
            row = self._connection.execute(
                "SELECT value FROM user_preferences WHERE key = ?", (key,)
            ).fetchone()
        if row is None:
            return default
        return json.loads(row[0])

    def set_preference(self, key: str, value: JsonValue) -> None:
        try:
            encoded = json.dumps(_JSON_ADAPTER.validate_python(value))
        except ValidationError as exc:
            raise ValueError(f"Preference {key!r} is not JSON data") from exc
        now = serialize_datetime(self._clock())
        with self._guard("saving a preference", write=True):
            self._connection.execute(
                """
                INSERT INTO user_preferences (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, encoded, now),
            )
        LOGGER.debug("Saved user preference: %s", key)

    def all_preferences(self) -> dict[str, JsonValue]:
        with self._guard("reading preferences"):
            rows = self._connection.execute(
                "SELECT key, value FROM user_preferences ORDER BY key"
            ).fetchall()
        return {row["key"]: json.loads(row["value"]) for row in rows}

    def delete_preference(self, key: str) -> bool:
        with self._guard("deleting a preference", write=True):
            cursor = self._connection.execute(
                "DELETE FROM user_preferences WHERE key = ?", (key,)
            )
        return cursor.rowcount > 0

    def save_favorite_categories(self, categories: Sequence[MessageCategory]) -> None:
        unique = list(dict.fromkeys(MessageCategory.parse(c).value for c in categories))
        self.set_preference(FAVORITE_CATEGORIES_KEY, unique)

    def load_favorite_categories(self) -> list[MessageCategory]:
        stored = self.get_preference(FAVORITE_CATEGORIES_KEY, [])
        if not isinstance(stored, list):
            return []
        categories = []
        for value in stored:
            try:
                categories.append(MessageCategory.parse(str(value)))
            except ValueError:
                LOGGER.debug("Dropping unknown favourite category %r", value)
        return categories

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._connection.close()

    # Internal helpers --------------------------------------------------------
    @contextmanager
    def _guard(self, action: str, *, write: bool = False) -> Iterator[None]:
        """Serialise access, commit writes and translate driver errors."""
        with self._lock:
            try:
                if write:
                    with self._connection:
                        yield
                else:
                    yield
            except sqlite3.Error as exc:
                LOGGER.error("Database error while %s: %s", action, exc, exc_info=True)
                raise StorageError(f"Database error while {action}: {exc}") from exc

    def _select_messages(
        self, condition: str, params: tuple[Any, ...], limit: int
    ) -> list[GeneratedMessage]:
        with self._guard("loading messages"):
            rows = self._connection.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS}
                FROM messages m
                WHERE m.deleted_at IS NULL {condition}
                ORDER BY m.generated_at DESC, m.saved_at DESC
                LIMIT ?
                """,
                (*params, limit),
            ).fetchall()
        return [_row_to_message(row) for row in rows]

    def _exists(self, message_id: str) -> bool:
        row = self._connection.execute(
            "SELECT 1 FROM messages WHERE id = ? AND deleted_at IS NULL",
            (message_id,),
        ).fetchone()
        return row is not None

    def _remove_orphaned_markers(self) -> int:
        removed = 0
        for table in ("favorites", "shared_messages"):
            removed += self._connection.execute(
                f"""
                DELETE FROM {table} WHERE message_id NOT IN (
                    SELECT id FROM messages WHERE deleted_at IS NULL
                )
                """
            ).rowcount
        return removed

    def _apply_migrations(self) -> None:
        schema_dir = Path(__file__).resolve().parent / "schema"
        for migration in sorted(schema_dir.glob("*.sql")):
            LOGGER.debug("Applying migration %s", migration.name)
            script = migration.read_text(encoding="utf-8")
            with self._connection:
                self._connection.executescript(script)

    def _ensure_indexes(self) -> None:
        index_statements = (
            "CREATE INDEX IF NOT EXISTS idx_messages_generated ON messages(generated_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_messages_category_generated ON messages(category, generated_at DESC)",
            "CREATE INDEX IF NOT EXISTS idx_generation_records_created ON generation_records(created_at DESC)",
        )
        with self._connection:
            for statement in index_statements:
                self._connection.execute(statement)


def _message_row(message: GeneratedMessage, saved_at: str | None) -> tuple[Any, ...]:
    context = message.context
    return (
        message.id,
        message.content,
        message.category.value,
        message.tone.value,
        message.estimated_impact.rank,
        message.origin.value,
        message.personality_match,
        context.time_of_day.value,
        context.recent_context,
        context.special_occasion,
        context.partner_name,
        context.personality_type,
        context.relationship_duration,
        serialize_datetime(message.generated_at),
        saved_at,
    )


def _row_to_message(row: sqlite3.Row) -> GeneratedMessage:
    return GeneratedMessage(
        id=row["id"],
        content=row["content"],
        category=MessageCategory(row["category"]),
        tone=MessageTone(row["tone"]),
        estimated_impact=MessageImpact.from_rank(row["impact_rank"]),
        origin=MessageOrigin(row["origin"]),
        personality_match=row["personality_match"],
        generated_at=_required_datetime(row["generated_at"]),
        context=MessageContext(
            time_of_day=TimeOfDay(row["time_of_day"]),
            recent_context=row["recent_context"],
            special_occasion=row["special_occasion"],
            partner_name=row["partner_name"],
            personality_type=row["personality_type"],
            relationship_duration=row["relationship_duration"],
        ),
    )


def _required_datetime(value: str) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise StorageError("Stored row is missing a timestamp")
    return parsed


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


__all__ = ["FAVORITE_CATEGORIES_KEY", "SqliteMessageStore"]
