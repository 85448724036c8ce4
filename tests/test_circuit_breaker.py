"""Tests for the per-strategy circuit breaker state machine."""
import threading
from src.toolmatch.retrieval.breaker import BreakerRegistry, BreakerState, CircuitBreaker
from src.toolmatch.retrieval.models import SearchStrategy
from tests.utils import ManualClock


def _make_breaker(threshold=3, cooldown=60.0):
    clock = ManualClock()
    return CircuitBreaker(SearchStrategy.ADAPTIVE, threshold, cooldown, clock=clock), clock


class TestTransitions:
    def test_starts_closed(self):
        breaker, _ = _make_breaker()
        assert breaker.state is BreakerState.CLOSED
        assert breaker.try_acquire()

    def test_opens_after_threshold_consecutive_failures(self):
        breaker, _ = _make_breaker(threshold=3)
        breaker.record_failure()
        breaker.record_failure()
        assert breaker.state is BreakerState.CLOSED
        breaker.record_failure()
        assert breaker.state is BreakerState.OPEN
        assert not breaker.try_acquire()

    def test_success_resets_consecutive_count(self):
        breaker, _ = _make_breaker(threshold=3)
        breaker.record_failure()
        breaker.record_failure()
        breaker.record_success()
        breaker.record_failure()
        assert breaker.state is BreakerState.CLOSED
        assert breaker.snapshot().consecutive_failures == 1

    def test_half_open_after_cooldown(self):
        breaker, clock = _make_breaker(cooldown=60)
        breaker.force_open()
        clock.advance(59)
        assert breaker.state is BreakerState.OPEN
        clock.advance(1)
        assert breaker.state is BreakerState.HALF_OPEN

    def test_half_open_allows_exactly_one_trial(self):
        breaker, clock = _make_breaker()
        breaker.force_open()
        clock.advance(61)
        assert breaker.try_acquire()
        assert not breaker.try_acquire()

    def test_half_open_success_closes(self):
        breaker, clock = _make_breaker()
        breaker.force_open()
        clock.advance(61)
        assert breaker.try_acquire()
        breaker.record_success()
        assert breaker.state is BreakerState.CLOSED
        assert breaker.snapshot().opened_at is None

    def test_half_open_failure_reopens_with_new_timestamp(self):
        breaker, clock = _make_breaker()
        breaker.force_open()
        first_opened = breaker.snapshot().opened_at
        clock.advance(61)
        assert breaker.try_acquire()
        breaker.record_failure()
        snap = breaker.snapshot()
        assert snap.state is BreakerState.OPEN
        assert snap.opened_at > first_opened

    def test_released_trial_can_be_retaken(self):
        breaker, clock = _make_breaker()
        breaker.force_open()
        clock.advance(61)
        assert breaker.try_acquire()
        breaker.release_trial()
        assert breaker.try_acquire()

    def test_reset(self):
        breaker, _ = _make_breaker()
        breaker.force_open()
        breaker.reset()
        assert breaker.state is BreakerState.CLOSED
        assert breaker.snapshot().consecutive_failures == 0


def test_concurrent_failures_are_not_lost():
    breaker = CircuitBreaker(SearchStrategy.HYBRID, failure_threshold=10_000)
    threads = [threading.Thread(target=lambda: [breaker.record_failure() for _ in range(500)]) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    snap = breaker.snapshot()
    assert snap.total_failures == 4000
    assert snap.consecutive_failures == 4000


class TestRegistry:
    def test_one_breaker_per_strategy(self):
        registry = BreakerRegistry()
        assert set(registry.stats()) == {s.value for s in SearchStrategy}

    def test_force_open_and_reset(self):
        registry = BreakerRegistry()
        registry.force_open(SearchStrategy.RAG_ENHANCED)
        assert registry.open_strategies() == [SearchStrategy.RAG_ENHANCED]
        assert registry.stats()["rag_enhanced"]["state"] == "open"
        registry.reset(SearchStrategy.RAG_ENHANCED)
        assert registry.open_strategies() == []

    def test_reset_all(self):
        registry = BreakerRegistry()
        for s in SearchStrategy:
            registry.force_open(s)
        registry.reset()
        assert registry.open_strategies() == []
