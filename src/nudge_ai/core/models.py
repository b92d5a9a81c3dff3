"""Core domain models used across the application."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from .datetime_utils import utc_now

MAX_RECENT_CONTEXT_LENGTH = 500
MAX_SPECIAL_OCCASION_LENGTH = 100
MAX_PARTNER_NAME_LENGTH = 50
MAX_PERSONALITY_TYPE_LENGTH = 50
MAX_RELATIONSHIP_DURATION_LENGTH = 50


class MessageCategory(str, Enum):
    """Kinds of message the service can generate."""

    DAILY_CHECKINS = "daily_checkins"
    APPRECIATION = "appreciation"
    SUPPORT = "support"
    ROMANTIC = "romantic"
    PLAYFUL = "playful"
    ENCOURAGEMENT = "encouragement"
    GRATITUDE = "gratitude"
    FLIRTY = "flirty"
    THOUGHTFUL = "thoughtful"
    CELEBRATORY = "celebratory"
    APOLOGY = "apology"
    GOOD_MORNING = "good_morning"
    GOOD_NIGHT = "good_night"

    @property
    def label(self) -> str:
        """Human readable name shown in lists and matched by search."""
        return _CATEGORY_LABELS[self]

    @classmethod
    def parse(cls, value: str | MessageCategory) -> MessageCategory:
        """Return the category for ``value`` or raise ``ValueError``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown message category: {value!r}") from exc


_CATEGORY_LABELS = {
    MessageCategory.DAILY_CHECKINS: "Daily Check-ins",
    MessageCategory.APPRECIATION: "Appreciation",
    MessageCategory.SUPPORT: "Support",
    MessageCategory.ROMANTIC: "Romantic",
    MessageCategory.PLAYFUL: "Playful",
    MessageCategory.ENCOURAGEMENT: "Encouragement",
    MessageCategory.GRATITUDE: "Gratitude",
    MessageCategory.FLIRTY: "Flirty",
    MessageCategory.THOUGHTFUL: "Thoughtful",
    MessageCategory.CELEBRATORY: "Celebratory",
    MessageCategory.APOLOGY: "Apology",
    MessageCategory.GOOD_MORNING: "Good Morning",
    MessageCategory.GOOD_NIGHT: "Good Night",
}


class MessageTone(str, Enum):
    """Emotional register of a generated message."""

    WARM = "warm"
    PLAYFUL = "playful"
    ROMANTIC = "romantic"
    SUPPORTIVE = "supportive"
    ENCOURAGING = "encouraging"
    GRATEFUL = "grateful"
    FLIRTY = "flirty"
    THOUGHTFUL = "thoughtful"
    CELEBRATORY = "celebratory"
    APOLOGETIC = "apologetic"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class MessageImpact(str, Enum):
    """Estimated emotional impact; ordered low < medium < high."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _IMPACT_RANKS[self]

    @property
    def label(self) -> str:
        return f"{self.value.capitalize()} Impact"

    @classmethod
    def from_rank(cls, value: float) -> MessageImpact:
        """Map an average numeric rank back to the nearest impact level."""
        rounded = min(max(round(value), 1), 3)
        return next(impact for impact, rank in _IMPACT_RANKS.items() if rank == rounded)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, MessageImpact):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, MessageImpact):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, MessageImpact):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, MessageImpact):
            return NotImplemented
        return self.rank >= other.rank


_IMPACT_RANKS = {
    MessageImpact.LOW: 1,
    MessageImpact.MEDIUM: 2,
    MessageImpact.HIGH: 3,
}


class TimeOfDay(str, Enum):
    """Coarse time-of-day bucket used to tailor messages."""

    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"

    @classmethod
    def current(cls, now: datetime | None = None) -> TimeOfDay:
        """Return the bucket for ``now`` (local time when omitted)."""
        hour = (now or datetime.now()).hour
        if 5 <= hour < 12:
            return cls.MORNING
        if 12 <= hour < 17:
            return cls.AFTERNOON
        if 17 <= hour < 21:
            return cls.EVENING
        return cls.NIGHT

    @property
    def delivery_window(self) -> str:
        """Suggested window for sending a message written for this bucket."""
        return _DELIVERY_WINDOWS[self]


_DELIVERY_WINDOWS = {
    TimeOfDay.MORNING: "8:00 AM - 10:00 AM",
    TimeOfDay.AFTERNOON: "12:00 PM - 2:00 PM",
    TimeOfDay.EVENING: "6:00 PM - 8:00 PM",
    TimeOfDay.NIGHT: "9:00 PM - 10:00 PM",
}


class MessageOrigin(str, Enum):
    """Where a generated message came from."""

    REMOTE = "remote"
    FALLBACK = "fallback"


class ConnectionQuality(str, Enum):
    """Coarse network health, ordered best to worst."""

    EXCELLENT = "excellent"
    GOOD = "good"
    POOR = "poor"
    OFFLINE = "offline"

    @property
    def severity(self) -> int:
        return list(ConnectionQuality).index(self)


def _check_length(name: str, value: str | None, limit: int) -> None:
    if value is not None and len(value) > limit:
        raise ValueError(f"{name} must be at most {limit} characters")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


# pylint: disable=too-many-instance-attributes
@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """Immutable description of what the user asked to generate."""

    category: MessageCategory
    time_of_day: TimeOfDay = field(default_factory=TimeOfDay.current)
    recent_context: str | None = None
    special_occasion: str | None = None
    partner_name: str | None = None
    personality_type: str | None = None
    relationship_duration: str | None = None
    preferred_tone: MessageTone | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", MessageCategory.parse(self.category))
        object.__setattr__(self, "time_of_day", TimeOfDay(self.time_of_day))
        if self.preferred_tone is not None:
            object.__setattr__(self, "preferred_tone", MessageTone(self.preferred_tone))
        for name in (
            "recent_context",
            "special_occasion",
            "partner_name",
            "personality_type",
            "relationship_duration",
        ):
            object.__setattr__(self, name, _clean(getattr(self, name)))
        _check_length("recent_context", self.recent_context, MAX_RECENT_CONTEXT_LENGTH)
        _check_length(
            "special_occasion", self.special_occasion, MAX_SPECIAL_OCCASION_LENGTH
        )
        _check_length("partner_name", self.partner_name, MAX_PARTNER_NAME_LENGTH)
        _check_length(
            "personality_type", self.personality_type, MAX_PERSONALITY_TYPE_LENGTH
        )
        _check_length(
            "relationship_duration",
            self.relationship_duration,
            MAX_RELATIONSHIP_DURATION_LENGTH,
        )

    def context_snapshot(self) -> MessageContext:
        """Return the personalisation context stored alongside each message."""
        return MessageContext(
            time_of_day=self.time_of_day,
            recent_context=self.recent_context,
            special_occasion=self.special_occasion,
            partner_name=self.partner_name,
            personality_type=self.personality_type,
            relationship_duration=self.relationship_duration,
        )


@dataclass(frozen=True, slots=True)
class MessageContext:
    """Snapshot of the request context a message was written for."""

    time_of_day: TimeOfDay
    recent_context: str | None = None
    special_occasion: str | None = None
    partner_name: str | None = None
    personality_type: str | None = None
    relationship_duration: str | None = None


def new_message_id() -> str:
    """Return a fresh opaque identifier for a generated message."""
    return uuid.uuid4().hex


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class GeneratedMessage:
    """A single piece of generated text plus its provenance."""

    content: str
    category: MessageCategory
    tone: MessageTone
    estimated_impact: MessageImpact
    context: MessageContext
    origin: MessageOrigin = MessageOrigin.REMOTE
    personality_match: str | None = None
    generated_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_message_id)

    @property
    def word_count(self) -> int:
        return len(self.content.split())

    @property
    def reading_time_seconds(self) -> int:
        return max(1, self.word_count // 3)

    @property
    def is_fallback(self) -> bool:
        return self.origin is MessageOrigin.FALLBACK


@dataclass(slots=True)
class GenerationRecord:
    """One row per generation attempt, used only for aggregate statistics."""

    category: MessageCategory
    time_of_day: TimeOfDay
    had_context: bool
    had_special_occasion: bool
    messages_generated: int
    average_impact: float
    origin: MessageOrigin
    created_at: datetime = field(default_factory=utc_now)
    id: str = field(default_factory=new_message_id)

    @classmethod
    def for_messages(
        cls,
        request: GenerationRequest,
        messages: tuple[GeneratedMessage, ...] | list[GeneratedMessage],
        origin: MessageOrigin,
    ) -> GenerationRecord:
        """Summarise a finished generation for the statistics log."""
        ranks = [message.estimated_impact.rank for message in messages]
        average = sum(ranks) / len(ranks) if ranks else 0.0
        return cls(
            category=request.category,
            time_of_day=request.time_of_day,
            had_context=request.recent_context is not None,
            had_special_occasion=request.special_occasion is not None,
            messages_generated=len(messages),
            average_impact=average,
            origin=origin,
        )


# pylint: disable=too-many-instance-attributes
@dataclass(slots=True)
class StorageStatistics:
    """Aggregate view over the message store, computed on demand."""

    total_messages: int
    favorite_messages: int
    messages_per_category: dict[MessageCategory, int]
    storage_bytes: int
    oldest_message_at: datetime | None
    newest_message_at: datetime | None
    generation_records: int
    average_messages_per_generation: float

    @property
    def storage_used_mb(self) -> float:
        return self.storage_bytes / (1024.0 * 1024.0)


@dataclass(frozen=True, slots=True)
class CategoryInfo:
    """Category descriptor as listed to users."""

    key: str
    label: str
    description: str = ""
    priority: int = 0

    @property
    def category(self) -> MessageCategory | None:
        """The matching known category, if the key is one."""
        try:
            return MessageCategory(self.key)
        except ValueError:
            return None


@dataclass(slots=True)
class GenerationResult:
    """Outcome of a generation call handed back to the caller."""

    messages: tuple[GeneratedMessage, ...]
    origin: MessageOrigin
    attempts: int
    quality: ConnectionQuality
    provider: str
    warnings: tuple[str, ...] = ()

    @property
    def used_fallback(self) -> bool:
        return self.origin is MessageOrigin.FALLBACK


__all__ = [
    "CategoryInfo",
    "ConnectionQuality",
    "GeneratedMessage",
    "GenerationRecord",
    "GenerationRequest",
    "GenerationResult",
    "MessageCategory",
    "MessageContext",
    "MessageImpact",
    "MessageOrigin",
    "MessageTone",
    "StorageStatistics",
    "TimeOfDay",
    "new_message_id",
]
