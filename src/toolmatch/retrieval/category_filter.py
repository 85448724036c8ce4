"""Preference hard filters and soft boosts.

Boosts prioritize tools from preferred categories without removing others.
Filters remove tools a caller can never accept (budget, free-only).
Pure functions with no state.
"""

from __future__ import annotations

from typing import Optional

from .models import (
    BUDGET_ALLOWED_PRICING,
    PAID_ONLY_PRICING,
    Candidate,
    Pricing,
    UserPreferences,
)


def passes_hard_filters(candidate: Candidate, preferences: Optional[UserPreferences]) -> bool:
    """Budget range and free-only are hard filters. Unknown pricing always passes."""
    if preferences is None:
        return True
    pricing = candidate.pricing
    if preferences.free_tools_only and pricing in PAID_ONLY_PRICING:
        return False
    if preferences.budget_range is not None:
        allowed = BUDGET_ALLOWED_PRICING[preferences.budget_range]
        if pricing not in allowed and pricing is not Pricing.UNKNOWN:
            return False
    return True


def apply_hard_filters(
    candidates: list[Candidate],
    preferences: Optional[UserPreferences],
) -> tuple[list[Candidate], int]:
    """Return (kept candidates, number removed)."""
    kept = [c for c in candidates if passes_hard_filters(c, preferences)]
    return kept, len(candidates) - len(kept)


def preference_boost(
    candidate: Candidate,
    preferences: Optional[UserPreferences],
    boost_factor: float = 1.1,
) -> float:
    """Soft boost for preferred categories and a matching difficulty level."""
    if preferences is None:
        return 1.0
    boost = 1.0
    if preferences.categories and set(preferences.categories) & set(candidate.categories):
        boost *= boost_factor
    difficulty = candidate.raw_metadata.get("difficulty")
    if preferences.difficulty_level and difficulty and str(difficulty).lower() == preferences.difficulty_level:
        boost *= 1.0 + (boost_factor - 1.0) / 2
    return boost
