"""Wire shapes exchanged with the generation service."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from nudge_ai.core.datetime_utils import ensure_utc, utc_now
from nudge_ai.core.models import (
    CategoryInfo,
    GeneratedMessage,
    GenerationRequest,
    MessageCategory,
    MessageImpact,
    MessageOrigin,
    MessageTone,
    new_message_id,
)
from nudge_ai.transport.errors import RemoteError, RemoteErrorKind

LOGGER = logging.getLogger(__name__)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class GenerateMessagesBody(_WireModel):
    """Request body for the generation endpoint."""

    category: str
    time_of_day: str
    recent_context: str | None = None
    special_occasion: str | None = None
    partner_name: str | None = None
    personality_type: str | None = None
    relationship_duration: str | None = None
    preferred_tone: str | None = None

    @classmethod
    def from_request(cls, request: GenerationRequest) -> GenerateMessagesBody:
        return cls(
            category=request.category.value,
            time_of_day=request.time_of_day.value,
            recent_context=request.recent_context,
            special_occasion=request.special_occasion,
            partner_name=request.partner_name,
            personality_type=request.personality_type,
            relationship_duration=request.relationship_duration,
            preferred_tone=request.preferred_tone.value if request.preferred_tone else None,
        )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class WireMessage(_WireModel):
    id: str | None = None
    content: str = Field(min_length=1)
    category: str | None = None
    tone: str | None = None
    estimated_impact: str | None = None
    personality_match: str | None = None
    generated_at: datetime | None = None


class GenerateMessagesResponse(_WireModel):
    success: bool = True
    messages: list[WireMessage] = Field(default_factory=list)
    error: str | None = None
    generations_remaining: int | None = None


class WireCategory(_WireModel):
    id: str
    label: str
    description: str = ""
    priority: int | None = None


class CategoriesResponse(_WireModel):
    success: bool = True
    categories: list[WireCategory] = Field(default_factory=list)


def parse_generated_messages(
    payload: Mapping[str, Any], request: GenerationRequest
) -> list[GeneratedMessage]:
    """Convert a generation response into domain messages.

    Raises :class:`RemoteError` with ``DECODING_ERROR`` for malformed or empty
    payloads and ``UNKNOWN`` when the service reports an unsuccessful call.
    """
    try:
        response = GenerateMessagesResponse.model_validate(payload)
    except ValidationError as exc:
        raise RemoteError(
            RemoteErrorKind.DECODING_ERROR, f"Malformed generation response: {exc}"
        ) from exc

    if not response.success:
        raise RemoteError(
            RemoteErrorKind.UNKNOWN, response.error or "Service reported a failure"
        )
    if not response.messages:
        raise RemoteError(
            RemoteErrorKind.DECODING_ERROR, "Generation response contained no messages"
        )

    context = request.context_snapshot()
    return [
        GeneratedMessage(
            content=item.content.strip(),
            category=_coerce_category(item.category, request.category),
            tone=_coerce_tone(item.tone, request.preferred_tone),
            estimated_impact=_coerce_impact(item.estimated_impact),
            context=context,
            origin=MessageOrigin.REMOTE,
            personality_match=item.personality_match,
            generated_at=ensure_utc(item.generated_at) if item.generated_at else utc_now(),
            id=item.id or new_message_id(),
        )
        for item in response.messages
    ]


def parse_categories(payload: Mapping[str, Any]) -> list[CategoryInfo]:
    """Convert a category listing response into descriptors."""
    try:
        response = CategoriesResponse.model_validate(payload)
    except ValidationError as exc:
        raise RemoteError(
            RemoteErrorKind.DECODING_ERROR, f"Malformed categories response: {exc}"
        ) from exc
    if not response.success or not response.categories:
        raise RemoteError(RemoteErrorKind.DECODING_ERROR, "No categories returned")
    return [
        CategoryInfo(
            key=item.id,
            label=item.label,
            description=item.description,
            priority=item.priority or 0,
        )
        for item in response.categories
    ]


def categories_to_json(categories: list[CategoryInfo]) -> list[dict[str, Any]]:
    return [
        {
            "key": info.key,
            "label": info.label,
            "description": info.description,
            "priority": info.priority,
        }
        for info in categories
    ]


def categories_from_json(raw: Any) -> list[CategoryInfo]:
    if not isinstance(raw, list):
        raise ValueError("Cached categories must be a list")
    return [
        CategoryInfo(
            key=str(item["key"]),
            label=str(item["label"]),
            description=str(item.get("description", "")),
            priority=int(item.get("priority", 0)),
        )
        for item in raw
    ]


def _coerce_category(
    value: str | None, default: MessageCategory
) -> MessageCategory:
    if not value:
        return default
    try:
        return MessageCategory.parse(value)
    except ValueError:
        LOGGER.debug("Unknown category %r in response; using %s", value, default.value)
        return default


def _coerce_tone(value: str | None, preferred: MessageTone | None) -> MessageTone:
    fallback = preferred or MessageTone.WARM
    if not value:
        return fallback
    try:
        return MessageTone(value.strip().lower())
    except ValueError:
        LOGGER.debug("Unknown tone %r in response; using %s", value, fallback.value)
        return fallback


def _coerce_impact(value: str | None) -> MessageImpact:
    if not value:
        return MessageImpact.MEDIUM
    try:
        return MessageImpact(value.strip().lower())
    except ValueError:
        return MessageImpact.MEDIUM


__all__ = [
    "CategoriesResponse",
    "GenerateMessagesBody",
    "GenerateMessagesResponse",
    "categories_from_json",
    "categories_to_json",
    "parse_categories",
    "parse_generated_messages",
]
