"""Tests for the bounded metrics recorder."""
import pytest
from src.toolmatch.monitoring.metrics import RECOMMENDATION_LATENCY, MetricsRecorder, percentile
from tests.utils import ManualClock


def test_percentile_nearest_rank():
    values = list(range(1, 101))
    assert percentile(values, 95) == 95
    assert percentile(values, 99) == 99
    assert percentile([5.0], 99) == 5.0
    assert percentile([], 95) == 0.0


def test_capacity_evicts_oldest():
    recorder = MetricsRecorder(capacity=3)
    for i in range(5):
        recorder.record("x", i)
    assert len(recorder) == 3
    assert [m.value for m in recorder.recent("x")] == [2.0, 3.0, 4.0]


def test_tags_are_stringified():
    metric = MetricsRecorder().record("x", 1, tags={"count": 3, "ok": True})
    assert metric.tags == {"count": "3", "ok": "True"}


def test_stats_summary():
    clock = ManualClock()
    recorder = MetricsRecorder(clock=clock)
    for value in (10, 20, 30, 40):
        recorder.record("lat", value)
        clock.advance(1)
    stats = recorder.stats("lat")
    assert stats.count == 4
    assert stats.average == 25.0
    assert (stats.minimum, stats.maximum) == (10.0, 40.0)
    assert stats.p95 == 40.0
    assert stats.throughput == pytest.approx(4 / 3)


def test_window_excludes_old_metrics():
    clock = ManualClock()
    recorder = MetricsRecorder(clock=clock)
    recorder.record("lat", 100)
    clock.advance(400)
    recorder.record("lat", 5)
    assert [m.value for m in recorder.recent("lat", window_seconds=300)] == [5.0]
    assert recorder.stats("lat", window_seconds=300).count == 1


def test_error_rate_counts_exhausted_and_error():
    recorder = MetricsRecorder()
    for outcome in ("success", "success", "no_match", "exhausted", "error"):
        recorder.record(RECOMMENDATION_LATENCY, 1, tags={"outcome": outcome})
    assert recorder.error_rate() == pytest.approx(0.4)
    stats = recorder.stats(RECOMMENDATION_LATENCY)
    assert stats.success_rate == pytest.approx(0.4)


def test_empty_stats():
    recorder = MetricsRecorder()
    assert recorder.stats("missing").count == 0
    assert recorder.error_rate() == 0.0
    recorder.record("x", 1)
    recorder.clear()
    assert len(recorder) == 0
