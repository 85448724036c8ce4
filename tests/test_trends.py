"""Tests for thirds-based trend analysis."""
import pytest
from src.toolmatch.monitoring.trends import TrendDirection, analyze_trend


def test_insufficient_data():
    assert analyze_trend([1, 2, 3]).direction is TrendDirection.INSUFFICIENT_DATA


def test_stable_within_band():
    assert analyze_trend([100, 102, 98, 101, 99, 105]).direction is TrendDirection.STABLE


def test_rising_latency_is_degrading():
    trend = analyze_trend([100, 100, 150, 150, 200, 200], metric="lat")
    assert trend.direction is TrendDirection.DEGRADING
    assert trend.older_mean == 100
    assert trend.recent_mean == 200
    assert trend.change_pct == pytest.approx(100.0)
    assert trend.time_to_threshold is None


def test_falling_latency_is_improving():
    assert analyze_trend([200, 200, 150, 150, 100, 100]).direction is TrendDirection.IMPROVING


def test_falling_uptime_is_degrading():
    trend = analyze_trend([100, 100, 90, 90, 80, 80], higher_is_worse=False)
    assert trend.direction is TrendDirection.DEGRADING


def test_time_to_threshold_in_samples():
    # Means 100 -> 200 over 4 samples: +25 per sample, 300 more to reach 500
    trend = analyze_trend([100, 100, 150, 150, 200, 200], threshold=500)
    assert trend.time_to_threshold == pytest.approx(12.0)


def test_time_to_threshold_in_seconds():
    timestamps = [0, 10, 20, 30, 40, 50]
    trend = analyze_trend([100, 100, 150, 150, 200, 200], timestamps=timestamps, threshold=500)
    # Third means are 5s and 45s apart
    assert trend.time_to_threshold == pytest.approx(300 / (100 / 40))


def test_threshold_already_crossed():
    trend = analyze_trend([100, 100, 150, 150, 600, 600], threshold=500)
    assert trend.time_to_threshold == 0.0


def test_to_dict():
    data = analyze_trend([1, 1, 1, 1, 1, 1], metric="m").to_dict()
    assert data["direction"] == "stable"
    assert data["metric"] == "m"
