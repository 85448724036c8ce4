"""Quality-weighted reranker.

final = similarity * 0.6 + quality * 0.4. The blend is global; TaskType only
changes how the quality scalar is weighted from its components.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from .category_filter import apply_hard_filters, preference_boost
from .models import Candidate, TaskType, UserPreferences

SIMILARITY_WEIGHT = 0.6
QUALITY_WEIGHT = 0.4

# Used when a candidate carries no quality signal at all
NEUTRAL_QUALITY = 0.5

QUALITY_WEIGHTS: dict[TaskType, dict[str, float]] = {
    TaskType.CODING: {
        "benchmark_score": 0.5, "user_rating_score": 0.2,
        "performance_score": 0.2, "reliability_score": 0.1,
    },
    TaskType.MATH: {
        "benchmark_score": 0.5, "user_rating_score": 0.15,
        "performance_score": 0.2, "reliability_score": 0.15,
    },
    TaskType.ANALYSIS: {
        "benchmark_score": 0.4, "user_rating_score": 0.25,
        "performance_score": 0.2, "reliability_score": 0.15,
    },
    TaskType.WRITING: {
        "benchmark_score": 0.15, "user_rating_score": 0.5,
        "performance_score": 0.15, "reliability_score": 0.2,
    },
    TaskType.DESIGN: {
        "benchmark_score": 0.1, "user_rating_score": 0.5,
        "performance_score": 0.2, "reliability_score": 0.2,
    },
    TaskType.COMMUNICATION: {
        "benchmark_score": 0.1, "user_rating_score": 0.4,
        "performance_score": 0.2, "reliability_score": 0.3,
    },
    TaskType.GENERAL: {
        "benchmark_score": 0.25, "user_rating_score": 0.25,
        "performance_score": 0.25, "reliability_score": 0.25,
    },
}

_FACTOR_LABELS = {
    "similarity": "close match to the task description",
    "benchmark_score": "strong benchmark results",
    "user_rating_score": "high user ratings",
    "performance_score": "strong performance",
    "reliability_score": "high reliability",
}


@dataclass(frozen=True)
class RankedCandidate:
    candidate: Candidate
    quality_score: float
    final_score: float
    dominant_factor: str
    reason: str


@dataclass
class RerankOutcome:
    ranked: list[RankedCandidate] = field(default_factory=list)
    filtered_out: int = 0
    duration: float = 0.0

    @property
    def best(self) -> Optional[RankedCandidate]:
        return self.ranked[0] if self.ranked else None


def quality_score(candidate: Candidate, task_type: TaskType) -> tuple[float, dict[str, float]]:
    """Weighted quality scalar and each component's share of it.

    Weights are re-normalized over the components that are present.
    """
    present = candidate.quality.present()
    weights = QUALITY_WEIGHTS.get(task_type, QUALITY_WEIGHTS[TaskType.GENERAL])
    total_weight = sum(weights[name] for name in present)
    if not present or total_weight <= 0:
        return NEUTRAL_QUALITY, {}

    contributions = {
        name: weights[name] / total_weight * max(0.0, min(1.0, value))
        for name, value in present.items()
    }
    return max(0.0, min(1.0, sum(contributions.values()))), contributions


def final_score(similarity: float, quality: float, boost: float = 1.0) -> float:
    similarity = max(0.0, min(1.0, similarity))
    return max(0.0, min(1.0, (similarity * SIMILARITY_WEIGHT + quality * QUALITY_WEIGHT) * boost))


class Reranker:
    """Scores, filters and orders candidates for one task."""

    def __init__(self, category_boost: float = 1.1) -> None:
        self.category_boost = category_boost

    def rerank(
        self,
        candidates: list[Candidate],
        task_type: TaskType,
        preferences: Optional[UserPreferences] = None,
    ) -> RerankOutcome:
        """Rank candidates best-first.

        Budget range and free-only are hard filters; category and difficulty
        preferences only boost. Ties break by quality, then catalog recency.
        """
        start = time.perf_counter()
        kept, removed = apply_hard_filters(candidates, preferences)

        ranked = [self._score(c, task_type, preferences) for c in kept]
        ranked.sort(
            key=lambda r: (
                r.final_score,
                r.quality_score,
                r.candidate.updated_at,
                r.candidate.tool_id,
            ),
            reverse=True,
        )
        return RerankOutcome(
            ranked=ranked,
            filtered_out=removed,
            duration=time.perf_counter() - start,
        )

    def _score(
        self,
        candidate: Candidate,
        task_type: TaskType,
        preferences: Optional[UserPreferences],
    ) -> RankedCandidate:
        quality, contributions = quality_score(candidate, task_type)
        boost = preference_boost(candidate, preferences, self.category_boost)
        score = final_score(candidate.similarity, quality, boost)

        factors = {"similarity": SIMILARITY_WEIGHT * candidate.similarity}
        factors.update({name: QUALITY_WEIGHT * part for name, part in contributions.items()})
        dominant = max(factors, key=lambda name: (factors[name], name == "similarity"))

        return RankedCandidate(
            candidate=candidate,
            quality_score=round(quality, 4),
            final_score=round(score, 4),
            dominant_factor=dominant,
            reason=self._reason(candidate, task_type, dominant, quality),
        )

    @staticmethod
    def _reason(candidate: Candidate, task_type: TaskType, dominant: str, quality: float) -> str:
        if dominant == "similarity":
            detail = f"similarity {candidate.similarity:.2f}"
        else:
            value = candidate.quality.present().get(dominant, quality)
            detail = f"{dominant.replace('_score', '').replace('_', ' ')} {value:.2f}"
        reason = f"Recommended for {task_type.value} task: {_FACTOR_LABELS[dominant]} ({detail})"
        if candidate.knowledge_sources:
            reason += f"; informed by {len(candidate.knowledge_sources)} knowledge entries"
        return reason
