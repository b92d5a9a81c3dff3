"""Static catalogue of message categories and recommendation heuristics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from nudge_ai.core.models import CategoryInfo, MessageCategory, TimeOfDay

ANY_PERSONALITY = "any"
_ALL_TIMES = tuple(TimeOfDay)


@dataclass(frozen=True)
class CategoryProfile:
    category: MessageCategory
    description: str
    priority: int
    hints: tuple[str, ...]
    personality_matches: tuple[str, ...] = (ANY_PERSONALITY,)
    time_preferences: tuple[TimeOfDay, ...] = _ALL_TIMES

    def to_info(self) -> CategoryInfo:
        return CategoryInfo(
            key=self.category.value,
            label=self.category.label,
            description=self.description,
            priority=self.priority,
        )

    def matches_personality(self, personality_type: str | None) -> bool:
        if ANY_PERSONALITY in self.personality_matches:
            return True
        if not personality_type:
            return False
        return personality_type.strip().lower() in self.personality_matches


_C = MessageCategory
_T = TimeOfDay
_QUIET = ("introvert", "thoughtful", "caring")
_OUTGOING = ("extrovert", "playful", "outgoing")
_SUPPORTIVE = ("supportive", "empathetic", "caring")
_GRATEFUL = ("grateful", "appreciative", "mindful")

PROFILES: dict[MessageCategory, CategoryProfile] = {
    profile.category: profile
    for profile in (
        CategoryProfile(
            _C.DAILY_CHECKINS,
            "Sweet check-ins to stay connected throughout the day",
            10,
            ("How's your day going?", "Thinking of you", "Hope you're having a great day"),
            _QUIET,
            (_T.MORNING, _T.AFTERNOON),
        ),
        CategoryProfile(
            _C.APPRECIATION,
            "Express gratitude and appreciation for your partner",
            10,
            ("Thank you for", "I appreciate how you", "You always make me feel"),
            _GRATEFUL,
        ),
        CategoryProfile(
            _C.SUPPORT,
            "Offer comfort and support during challenging times",
            9,
            ("I'm here for you", "You've got this", "Remember that I believe in you"),
            _SUPPORTIVE,
        ),
        CategoryProfile(
            _C.ROMANTIC,
            "Romantic messages to spark intimacy and connection",
            10,
            ("I love the way you", "You make my heart", "Can't wait to see you"),
            ("romantic", "affectionate", "intimate"),
            (_T.EVENING, _T.NIGHT),
        ),
        CategoryProfile(
            _C.PLAYFUL,
            "Fun and lighthearted messages to bring joy",
            8,
            ("Remember when we", "You're such a goofball", "This made me think of you"),
            _OUTGOING,
            (_T.AFTERNOON, _T.EVENING),
        ),
        CategoryProfile(
            _C.ENCOURAGEMENT,
            "Motivating messages to lift your partner's spirits",
            9,
            ("You're amazing at", "I believe in your", "You can do anything"),
            _SUPPORTIVE,
            (_T.MORNING,),
        ),
        CategoryProfile(
            _C.GRATITUDE,
            "Express thankfulness for the little things",
            8,
            ("I'm so grateful for", "Thank you for always", "You mean the world to me"),
            _GRATEFUL,
        ),
        CategoryProfile(
            _C.FLIRTY,
            "Playful and flirtatious messages to keep the spark alive",
            8,
            ("You look incredible when", "Can't stop thinking about", "You drive me crazy"),
            _OUTGOING,
            (_T.AFTERNOON, _T.EVENING),
        ),
        CategoryProfile(
            _C.THOUGHTFUL,
            "Meaningful messages that show you're thinking of them",
            9,
            ("I was just thinking about", "You came to mind because", "This reminded me of you"),
            _QUIET,
        ),
        CategoryProfile(
            _C.CELEBRATORY,
            "Celebrate achievements and special moments",
            7,
            ("Congratulations on", "So proud of you for", "Let's celebrate"),
        ),
        CategoryProfile(
            _C.APOLOGY,
            "Heartfelt apologies to mend and strengthen your bond",
            6,
            ("I'm sorry for", "I didn't mean to", "Please forgive me"),
        ),
        CategoryProfile(
            _C.GOOD_MORNING,
            "Start the day with loving morning messages",
            7,
            ("Good morning beautiful", "Hope your day is", "Starting my day thinking of you"),
            time_preferences=(_T.MORNING,),
        ),
        CategoryProfile(
            _C.GOOD_NIGHT,
            "End the day with sweet goodnight wishes",
            7,
            ("Sweet dreams", "Sleep well my love", "Good night beautiful"),
            time_preferences=(_T.EVENING, _T.NIGHT),
        ),
    )
}

_PERSONALITY_HINTS: dict[tuple[MessageCategory, str], tuple[str, ...]] = {
    (_C.ROMANTIC, "introvert"): ("In quiet moments like these", "Your gentle touch means"),
    (_C.ROMANTIC, "extrovert"): ("I love how we laugh together", "You light up every room"),
    (_C.SUPPORT, "introvert"): ("I understand you need space", "Take your time, I'm here"),
    (_C.SUPPORT, "extrovert"): ("Want to talk it out?", "I'm here to listen and help"),
}


def profile_for(category: MessageCategory | str) -> CategoryProfile:
    return PROFILES[MessageCategory.parse(category)]


def default_categories() -> list[CategoryInfo]:
    """Catalogue used when the service listing cannot be fetched or cached."""
    ordered = sorted(PROFILES.values(), key=lambda profile: -profile.priority)
    return [profile.to_info() for profile in ordered]


def contextual_hints(
    category: MessageCategory | str, personality_type: str | None = None
) -> list[str]:
    """Conversation starters for ``category``, with personality-specific extras."""
    profile = profile_for(category)
    hints = list(profile.hints)
    if personality_type:
        key = (profile.category, personality_type.strip().lower())
        for hint in _PERSONALITY_HINTS.get(key, ()):
            if hint not in hints:
                hints.append(hint)
    return hints


def rank_categories(
    time_of_day: TimeOfDay,
    personality_type: str | None = None,
    *,
    profiles: Sequence[CategoryProfile] | None = None,
) -> list[MessageCategory]:
    """Order categories by fit for the moment and personality.

    Categories suited to ``time_of_day`` come first; among those an explicit
    personality match outranks a generic one, then catalogue priority decides.
    Categories that fit neither the time nor the personality are left out.
    """
    candidates = profiles if profiles is not None else tuple(PROFILES.values())
    normalized = personality_type.strip().lower() if personality_type else None

    scored: list[tuple[int, int, int, MessageCategory]] = []
    for index, profile in enumerate(candidates):
        time_fit = time_of_day in profile.time_preferences
        explicit = normalized is not None and normalized in profile.personality_matches
        if not time_fit and not explicit:
            continue
        if normalized is not None and not profile.matches_personality(normalized):
            continue
        score = (2 if time_fit else 0) + (1 if explicit else 0)
        scored.append((score, profile.priority, -index, profile.category))

    scored.sort(reverse=True)
    return [category for *_, category in scored]


__all__ = [
    "ANY_PERSONALITY",
    "CategoryProfile",
    "PROFILES",
    "contextual_hints",
    "default_categories",
    "profile_for",
    "rank_categories",
]
