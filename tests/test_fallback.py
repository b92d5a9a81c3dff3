"""Tests for template fallback generation and the category catalogue."""

from __future__ import annotations

import random

import pytest

from nudge_ai.core.models import (
    GenerationRequest,
    MessageCategory,
    MessageOrigin,
    MessageTone,
    TimeOfDay,
)
from nudge_ai.intelligence import (
    FallbackMessageGenerator,
    contextual_hints,
    default_categories,
    rank_categories,
)


@pytest.mark.parametrize("category", list(MessageCategory))
def test_every_category_produces_fallback_messages(category: MessageCategory) -> None:
    request = GenerationRequest(category=category, time_of_day=TimeOfDay.MORNING)
    messages = FallbackMessageGenerator().generate(request)

    assert len(messages) == 3
    assert all(message.origin is MessageOrigin.FALLBACK for message in messages)
    assert all(message.category is category for message in messages)
    assert all("{" not in message.content for message in messages)
    assert len({message.id for message in messages}) == 3


def test_partner_name_and_occasion_substituted() -> None:
    request = GenerationRequest(
        category=MessageCategory.CELEBRATORY,
        time_of_day=TimeOfDay.EVENING,
        partner_name="Jordan",
        special_occasion="anniversary",
    )
    messages = FallbackMessageGenerator(message_count=2).generate(request)

    assert messages[0].content.startswith("Happy anniversary, Jordan!")
    assert all("Jordan" in message.content for message in messages)


def test_default_name_used_without_partner() -> None:
    request = GenerationRequest(category=MessageCategory.SUPPORT)
    contents = [m.content for m in FallbackMessageGenerator().generate(request)]
    assert any("love" in content for content in contents)


def test_time_specific_templates_come_first() -> None:
    request = GenerationRequest(
        category=MessageCategory.GOOD_NIGHT, time_of_day=TimeOfDay.NIGHT
    )
    first = FallbackMessageGenerator(message_count=1).generate(request)[0]
    assert first.content.startswith("Sweet dreams")


def test_output_is_deterministic_without_rng() -> None:
    request = GenerationRequest(category=MessageCategory.ROMANTIC, time_of_day=TimeOfDay.AFTERNOON)
    generator = FallbackMessageGenerator()
    first = [m.content for m in generator.generate(request)]
    second = [m.content for m in generator.generate(request)]
    assert first == second

    shuffled = FallbackMessageGenerator(rng=random.Random(3)).generate(request)
    assert len(shuffled) == 3


def test_large_counts_pad_with_generic_templates() -> None:
    request = GenerationRequest(category=MessageCategory.APOLOGY)
    messages = FallbackMessageGenerator(message_count=6).generate(request)
    assert len(messages) == 6


def test_preferred_tone_wins() -> None:
    request = GenerationRequest(
        category=MessageCategory.PLAYFUL, preferred_tone=MessageTone.FLIRTY
    )
    messages = FallbackMessageGenerator().generate(request)
    assert {message.tone for message in messages} == {MessageTone.FLIRTY}


def test_default_catalogue_is_priority_ordered() -> None:
    catalogue = default_categories()
    assert len(catalogue) == len(MessageCategory)
    priorities = [info.priority for info in catalogue]
    assert priorities == sorted(priorities, reverse=True)
    assert catalogue[0].priority == 10


def test_rank_categories_prefers_time_and_personality() -> None:
    morning = rank_categories(TimeOfDay.MORNING)
    assert MessageCategory.GOOD_MORNING in morning
    assert MessageCategory.GOOD_NIGHT not in morning

    introvert = rank_categories(TimeOfDay.MORNING, "Introvert")
    assert introvert[0] is MessageCategory.DAILY_CHECKINS
    assert MessageCategory.PLAYFUL not in introvert


def test_contextual_hints_include_personality_extras() -> None:
    hints = contextual_hints(MessageCategory.ROMANTIC, "introvert")
    assert "I love the way you" in hints
    assert "In quiet moments like these" in hints
    assert contextual_hints("support") == [
        "I'm here for you",
        "You've got this",
        "Remember that I believe in you",
    ]
