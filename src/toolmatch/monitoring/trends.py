"""Trend analysis over a metric history.

The history is split into thirds; the mean of the oldest third is compared
with the mean of the most recent third. A change beyond ±10% is a trend.
When degrading, the recent rate of change is extrapolated to a threshold.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

MIN_SAMPLES = 6
TREND_BAND = 0.10


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DEGRADING = "degrading"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass(frozen=True)
class TrendAnalysis:
    metric: str
    direction: TrendDirection
    older_mean: float = 0.0
    recent_mean: float = 0.0
    change_pct: float = 0.0
    time_to_threshold: Optional[float] = None   # seconds, or samples without timestamps

    def to_dict(self) -> dict:
        return {
            "metric": self.metric,
            "direction": self.direction.value,
            "older_mean": round(self.older_mean, 4),
            "recent_mean": round(self.recent_mean, 4),
            "change_pct": round(self.change_pct, 2),
            "time_to_threshold": self.time_to_threshold,
        }


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def analyze_trend(
    values: Sequence[float],
    timestamps: Optional[Sequence[float]] = None,
    threshold: Optional[float] = None,
    higher_is_worse: bool = True,
    metric: str = "",
    band: float = TREND_BAND,
) -> TrendAnalysis:
    """Classify the direction of a series and project time-to-threshold.

    Args:
        values: Oldest first.
        timestamps: Matching timestamps in seconds. Without them the
            projection is expressed in samples.
        threshold: Level considered unhealthy.
        higher_is_worse: False for metrics such as uptime.
    """
    if len(values) < MIN_SAMPLES:
        return TrendAnalysis(metric, TrendDirection.INSUFFICIENT_DATA)

    third = len(values) // 3
    older, recent = values[:third], values[-third:]
    older_mean, recent_mean = _mean(older), _mean(recent)

    if older_mean == 0:
        change = 0.0 if recent_mean == 0 else (1.0 if recent_mean > 0 else -1.0)
    else:
        change = (recent_mean - older_mean) / abs(older_mean)

    worsening = change if higher_is_worse else -change
    if worsening > band:
        direction = TrendDirection.DEGRADING
    elif worsening < -band:
        direction = TrendDirection.IMPROVING
    else:
        direction = TrendDirection.STABLE

    eta = None
    if direction is TrendDirection.DEGRADING and threshold is not None:
        eta = _time_to_threshold(values, timestamps, third, older_mean, recent_mean, threshold, higher_is_worse)

    return TrendAnalysis(
        metric=metric,
        direction=direction,
        older_mean=older_mean,
        recent_mean=recent_mean,
        change_pct=change * 100.0,
        time_to_threshold=eta,
    )


def _time_to_threshold(
    values: Sequence[float],
    timestamps: Optional[Sequence[float]],
    third: int,
    older_mean: float,
    recent_mean: float,
    threshold: float,
    higher_is_worse: bool,
) -> Optional[float]:
    past = recent_mean >= threshold if higher_is_worse else recent_mean <= threshold
    if past:
        return 0.0

    if timestamps is not None and len(timestamps) == len(values):
        elapsed = _mean(timestamps[-third:]) - _mean(timestamps[:third])
    else:
        elapsed = float(len(values) - third)
    if elapsed <= 0:
        return None

    rate = (recent_mean - older_mean) / elapsed
    if rate == 0:
        return None
    eta = (threshold - recent_mean) / rate
    return eta if eta >= 0 else None
