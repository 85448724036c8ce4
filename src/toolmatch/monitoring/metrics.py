"""Bounded append-only store of performance metrics."""

from __future__ import annotations

import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

# Outcomes counted as errors by error_rate()
ERROR_OUTCOMES = frozenset({"exhausted", "error"})

RECOMMENDATION_LATENCY = "recommendation.latency"


@dataclass(frozen=True)
class PerformanceMetric:
    timestamp: float
    name: str
    value: float
    unit: str = "ms"
    tags: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "name": self.name,
            "value": self.value,
            "unit": self.unit,
            "tags": dict(self.tags),
        }


@dataclass(frozen=True)
class MetricStats:
    count: int = 0
    average: float = 0.0
    minimum: float = 0.0
    maximum: float = 0.0
    p95: float = 0.0
    p99: float = 0.0
    throughput: float = 0.0     # samples per second over the window
    success_rate: float = 1.0
    error_rate: float = 0.0


def percentile(values: list[float], pct: float) -> float:
    """Nearest-rank percentile. Empty input gives 0."""
    if not values:
        return 0.0
    ordered = sorted(values)
    rank = max(1, math.ceil(pct / 100.0 * len(ordered)))
    return ordered[min(rank, len(ordered)) - 1]


class MetricsRecorder:
    """Keeps the most recent `capacity` metrics across all names."""

    def __init__(self, capacity: int = 1000, clock: Callable[[], float] = time.time) -> None:
        self._metrics: deque[PerformanceMetric] = deque(maxlen=capacity)
        self._clock = clock

    def __len__(self) -> int:
        return len(self._metrics)

    def record(
        self,
        name: str,
        value: float,
        unit: str = "ms",
        tags: Optional[dict[str, str]] = None,
    ) -> PerformanceMetric:
        metric = PerformanceMetric(
            timestamp=self._clock(),
            name=name,
            value=float(value),
            unit=unit,
            tags={k: str(v) for k, v in (tags or {}).items()},
        )
        self._metrics.append(metric)
        return metric

    def recent(
        self,
        name: Optional[str] = None,
        window_seconds: Optional[float] = None,
    ) -> list[PerformanceMetric]:
        cutoff = self._clock() - window_seconds if window_seconds is not None else None
        return [
            m for m in self._metrics
            if (name is None or m.name == name) and (cutoff is None or m.timestamp >= cutoff)
        ]

    def stats(self, name: str, window_seconds: Optional[float] = None) -> MetricStats:
        metrics = self.recent(name, window_seconds)
        if not metrics:
            return MetricStats()

        values = [m.value for m in metrics]
        with_outcome = [m for m in metrics if "outcome" in m.tags]
        errors = sum(1 for m in with_outcome if m.tags["outcome"] in ERROR_OUTCOMES)
        successes = sum(1 for m in with_outcome if m.tags["outcome"] == "success")

        if window_seconds:
            span = window_seconds
        else:
            span = max(metrics[-1].timestamp - metrics[0].timestamp, 1.0)

        return MetricStats(
            count=len(values),
            average=sum(values) / len(values),
            minimum=min(values),
            maximum=max(values),
            p95=percentile(values, 95),
            p99=percentile(values, 99),
            throughput=len(values) / span,
            success_rate=successes / len(with_outcome) if with_outcome else 1.0,
            error_rate=errors / len(with_outcome) if with_outcome else 0.0,
        )

    def error_rate(self, window_seconds: float = 300.0) -> float:
        """Fraction of recommendation calls in the window that ended in error."""
        return self.stats(RECOMMENDATION_LATENCY, window_seconds).error_rate

    def clear(self) -> None:
        self._metrics.clear()
