"""Deterministic template messages used when the service is unavailable."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass

from nudge_ai.core.models import (
    GeneratedMessage,
    GenerationRequest,
    MessageCategory,
    MessageImpact,
    MessageOrigin,
    MessageTone,
    TimeOfDay,
)

FALLBACK_PROVIDER = "template"
DEFAULT_NAME = "love"


@dataclass(frozen=True, slots=True)
class _Template:
    text: str
    tone: MessageTone
    impact: MessageImpact = MessageImpact.MEDIUM
    time_of_day: TimeOfDay | None = None


_W, _P, _R, _S = (
    MessageTone.WARM,
    MessageTone.PLAYFUL,
    MessageTone.ROMANTIC,
    MessageTone.SUPPORTIVE,
)
_HIGH, _LOW = MessageImpact.HIGH, MessageImpact.LOW

_TEMPLATES: dict[MessageCategory, tuple[_Template, ...]] = {
    MessageCategory.DAILY_CHECKINS: (
        _Template("Morning, {name}! How did you sleep?", _W, time_of_day=TimeOfDay.MORNING),
        _Template("Hey {name}, how's your day going so far?", _W, time_of_day=TimeOfDay.AFTERNOON),
        _Template("How was your day, {name}? I want to hear all about it.", _W, time_of_day=TimeOfDay.EVENING),
        _Template("Just checking in, {name}. Thinking of you.", _W, _LOW),
        _Template("Hope you're having a great day, {name}!", _W, _LOW),
    ),
    MessageCategory.APPRECIATION: (
        _Template("{name}, I appreciate everything you do for us.", MessageTone.GRATEFUL, _HIGH),
        _Template("Thank you for being you, {name}. It means more than you know.", MessageTone.GRATEFUL),
        _Template("I noticed all the little things you did today, {name}. Thank you.", _W),
    ),
    MessageCategory.SUPPORT: (
        _Template("I'm here for you, {name}, whatever you need.", _S, _HIGH),
        _Template("You've got this, {name}. I believe in you.", _S),
        _Template("Take it one step at a time, {name}. I'm right beside you.", _S),
    ),
    MessageCategory.ROMANTIC: (
        _Template("I love the way you make every day brighter, {name}.", _R, _HIGH),
        _Template("Can't wait to see you tonight, {name}.", _R, time_of_day=TimeOfDay.AFTERNOON),
        _Template("You make my heart skip a beat, {name}.", _R),
        _Template("Falling for you all over again, {name}.", _R, _HIGH, TimeOfDay.EVENING),
    ),
    MessageCategory.PLAYFUL: (
        _Template("This made me think of you, {name}. Guess what it is!", _P),
        _Template("Remember when we laughed until we cried, {name}? Let's do that again.", _P, _HIGH),
        _Template("You're my favourite goofball, {name}.", _P, _LOW),
    ),
    MessageCategory.ENCOURAGEMENT: (
        _Template("You can do anything you set your mind to, {name}.", MessageTone.ENCOURAGING, _HIGH),
        _Template("Go get them today, {name}!", MessageTone.ENCOURAGING, time_of_day=TimeOfDay.MORNING),
        _Template("I'm so proud of how hard you're working, {name}.", MessageTone.ENCOURAGING),
    ),
    MessageCategory.GRATITUDE: (
        _Template("I'm so grateful for you, {name}.", MessageTone.GRATEFUL, _HIGH),
        _Template("Thank you for always showing up for me, {name}.", MessageTone.GRATEFUL),
        _Template("Grateful for the little moments with you, {name}.", MessageTone.GRATEFUL, _LOW),
    ),
    MessageCategory.FLIRTY: (
        _Template("Can't stop thinking about you, {name}.", MessageTone.FLIRTY),
        _Template("You looked incredible today, {name}.", MessageTone.FLIRTY, _HIGH),
        _Template("Is it tonight yet, {name}?", MessageTone.FLIRTY, _LOW, TimeOfDay.AFTERNOON),
    ),
    MessageCategory.THOUGHTFUL: (
        _Template("I was just thinking about you, {name}, and smiled.", MessageTone.THOUGHTFUL),
        _Template("Something reminded me of you today, {name}.", MessageTone.THOUGHTFUL, _LOW),
        _Template("You came to mind, {name}, and I wanted you to know.", MessageTone.THOUGHTFUL),
    ),
    MessageCategory.CELEBRATORY: (
        _Template("So proud of you, {name}! Let's celebrate.", MessageTone.CELEBRATORY, _HIGH),
        _Template("Congratulations, {name}! You earned this.", MessageTone.CELEBRATORY, _HIGH),
        _Template("Cheers to you, {name}!", MessageTone.CELEBRATORY),
    ),
    MessageCategory.APOLOGY: (
        _Template("I'm sorry, {name}. You deserve better from me and I'll do better.", MessageTone.APOLOGETIC, _HIGH),
        _Template("I didn't mean to hurt you, {name}. Can we talk?", MessageTone.APOLOGETIC),
        _Template("Please forgive me, {name}. I value us too much.", MessageTone.APOLOGETIC),
    ),
    MessageCategory.GOOD_MORNING: (
        _Template("Good morning, {name}! Starting my day thinking of you.", _W, _HIGH, TimeOfDay.MORNING),
        _Template("Rise and shine, {name}! Hope today is wonderful.", _P),
        _Template("Good morning, {name}. Wishing you an easy, happy day.", _W, _LOW),
    ),
    MessageCategory.GOOD_NIGHT: (
        _Template("Sweet dreams, {name}.", _R, time_of_day=TimeOfDay.NIGHT),
        _Template("Good night, {name}. Sleep well.", _W, _LOW),
        _Template("Sleep tight, {name}. I'll be thinking of you.", _R, _HIGH),
    ),
}

_GENERIC_TEMPLATES: tuple[_Template, ...] = (
    _Template("Thinking of you, {name}.", _W),
    _Template("Just wanted to say hi, {name}.", _W, _LOW),
    _Template("You mean a lot to me, {name}.", _W, _HIGH),
)

_OCCASION_TEMPLATE = _Template(
    "Happy {occasion}, {name}! I'm so lucky to celebrate it with you.",
    MessageTone.CELEBRATORY,
    _HIGH,
)


class FallbackMessageGenerator:
    """Produce messages from static templates; never fails.

    Pass ``rng`` to vary template order; without one the output for a given
    request is always the same.
    """

    def __init__(self, *, message_count: int = 3, rng: random.Random | None = None) -> None:
        if message_count <= 0:
            raise ValueError("message_count must be positive")
        self._message_count = message_count
        self._rng = rng

    @property
    def provider_id(self) -> str:
        return FALLBACK_PROVIDER

    def generate(self, request: GenerationRequest) -> list[GeneratedMessage]:
        """Return ``message_count`` fallback messages for ``request``."""
        templates = _select_templates(request, self._message_count, self._rng)
        context = request.context_snapshot()
        return [
            GeneratedMessage(
                content=_render(template, request),
                category=request.category,
                tone=request.preferred_tone or template.tone,
                estimated_impact=template.impact,
                context=context,
                origin=MessageOrigin.FALLBACK,
                personality_match="offline-generated",
            )
            for template in templates
        ]


def _select_templates(
    request: GenerationRequest, count: int, rng: random.Random | None
) -> list[_Template]:
    pool = list(_TEMPLATES.get(request.category, _GENERIC_TEMPLATES))
    if rng is not None:
        rng.shuffle(pool)
    # templates written for this time of day first, then untimed ones
    ordered = [t for t in pool if t.time_of_day is request.time_of_day]
    ordered += [t for t in pool if t.time_of_day is None]
    ordered += [t for t in pool if t not in ordered]
    if request.special_occasion:
        ordered.insert(0, _OCCASION_TEMPLATE)
    for template in _GENERIC_TEMPLATES:
        if len(ordered) >= count:
            break
        if template not in ordered:
            ordered.append(template)
    return ordered[:count]


def _render(template: _Template, request: GenerationRequest) -> str:
    text = template.text.format(
        name=request.partner_name or DEFAULT_NAME,
        occasion=request.special_occasion or "",
    )
    return re.sub(r"\s+", " ", text).strip()


__all__ = ["FALLBACK_PROVIDER", "FallbackMessageGenerator"]
