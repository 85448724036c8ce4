"""Normalize raw catalog quality signals into QualityComponents."""

from __future__ import annotations

from typing import Any, Optional

from .models import CatalogTool, QualityComponents, TaskType

# Benchmarks preferred per task type, most relevant first
_TASK_BENCHMARKS: dict[TaskType, tuple[str, ...]] = {
    TaskType.CODING: ("HumanEval", "SWE_Bench", "MBPP"),
    TaskType.MATH: ("MATH", "GSM8K", "GPQA"),
    TaskType.ANALYSIS: ("GPQA", "MATH", "MMLU"),
}

_RATING_SOURCES = ("G2", "Capterra", "TrustPilot")


def normalize_score(value: Any, low: float, high: float) -> Optional[float]:
    """Clamp (value - low) / (high - low) into [0, 1]. Non-numeric → None."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return max(0.0, min(1.0, (float(value) - low) / (high - low)))


def _percent(value: Any) -> Optional[float]:
    # Values already expressed as a 0..1 fraction are kept as-is
    if isinstance(value, (int, float)) and not isinstance(value, bool) and 0.0 <= value <= 1.0:
        return float(value)
    return normalize_score(value, 0.0, 100.0)


def _benchmark_score(benchmarks: dict[str, Any], task_type: Optional[TaskType]) -> Optional[float]:
    if not benchmarks:
        return None
    for name in _TASK_BENCHMARKS.get(task_type, ()):
        score = _percent(benchmarks.get(name))
        if score is not None:
            return score
    values = [s for s in (_percent(v) for v in benchmarks.values()) if s is not None]
    return sum(values) / len(values) if values else None


def _rating_score(ratings: dict[str, Any], review_average: Optional[float]) -> Optional[float]:
    values = [
        s for s in (normalize_score(ratings.get(src), 1.0, 5.0) for src in _RATING_SOURCES)
        if s is not None
    ]
    own = normalize_score(review_average, 1.0, 5.0)
    if own is not None:
        values.append(own)
    return sum(values) / len(values) if values else None


def extract_quality_components(
    tool: CatalogTool,
    task_type: Optional[TaskType] = None,
) -> QualityComponents:
    """Build QualityComponents from a catalog record.

    benchmarks: 0..100 (or 0..1), user ratings: 1..5,
    performance_score / reliability_score: 0..100 (or 0..1).
    """
    scores = tool.scores or {}
    benchmarks = scores.get("benchmarks") if isinstance(scores.get("benchmarks"), dict) else {}
    ratings = scores.get("user_rating") if isinstance(scores.get("user_rating"), dict) else {}

    return QualityComponents(
        benchmark_score=_benchmark_score(benchmarks, task_type),
        user_rating_score=_rating_score(ratings, tool.review_average),
        performance_score=_percent(scores.get("performance_score")),
        reliability_score=_percent(scores.get("reliability_score")),
    )
