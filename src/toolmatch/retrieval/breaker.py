"""Per-strategy circuit breakers.

Closed → Open after `failure_threshold` consecutive failures.
Open → HalfOpen once `cooldown_seconds` have elapsed (evaluated lazily).
HalfOpen → Closed on success, → Open on failure. One trial call at a time.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from src.utils.logger import get_logger

from .models import FALLBACK_ORDER, SearchStrategy


class BreakerState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    strategy: SearchStrategy
    state: BreakerState
    consecutive_failures: int
    total_failures: int
    total_successes: int
    opened_at: Optional[float]

    @property
    def is_open(self) -> bool:
        return self.state is BreakerState.OPEN

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy.value,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "opened_at": self.opened_at,
        }


class CircuitBreaker:
    """Explicit finite-state breaker. All transitions happen under a lock."""

    def __init__(
        self,
        strategy: SearchStrategy,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.strategy = strategy
        self.failure_threshold = max(1, failure_threshold)
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._consecutive_failures = 0
        self._total_failures = 0
        self._total_successes = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self.logger = get_logger("CircuitBreaker")

    @property
    def state(self) -> BreakerState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def _maybe_half_open(self) -> None:
        if (
            self._state is BreakerState.OPEN
            and self._opened_at is not None
            and self._clock() - self._opened_at >= self.cooldown_seconds
        ):
            self._state = BreakerState.HALF_OPEN
            self._trial_in_flight = False
            self.logger.info(f"🔌 Breaker for {self.strategy.value} half-open after cool-down")

    def try_acquire(self) -> bool:
        """Return True if a call may proceed now.

        In HalfOpen only the first caller gets through until that trial
        reports back.
        """
        with self._lock:
            self._maybe_half_open()
            if self._state is BreakerState.CLOSED:
                return True
            if self._state is BreakerState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._total_successes += 1
            self._consecutive_failures = 0
            if self._state is not BreakerState.CLOSED:
                self.logger.info(f"🔌 Breaker for {self.strategy.value} closed")
            self._state = BreakerState.CLOSED
            self._opened_at = None
            self._trial_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            self._total_failures += 1
            self._consecutive_failures += 1
            if self._state is BreakerState.HALF_OPEN:
                self._open()
            elif (
                self._state is BreakerState.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                self._open()

    def _open(self) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        self.logger.warning(
            f"🔌 Breaker for {self.strategy.value} opened after "
            f"{self._consecutive_failures} consecutive failures"
        )

    def release_trial(self) -> None:
        """Give back a HalfOpen trial slot that was acquired but never used."""
        with self._lock:
            self._trial_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self._state = BreakerState.CLOSED
            self._consecutive_failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def force_open(self) -> None:
        with self._lock:
            self._open()

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            self._maybe_half_open()
            return BreakerSnapshot(
                strategy=self.strategy,
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                total_failures=self._total_failures,
                total_successes=self._total_successes,
                opened_at=self._opened_at,
            )


class BreakerRegistry:
    """One breaker per strategy, shared by every request and the monitor."""

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_seconds: float = 60.0,
        strategies: Iterable[SearchStrategy] = FALLBACK_ORDER,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._breakers = {
            s: CircuitBreaker(s, failure_threshold, cooldown_seconds, clock)
            for s in strategies
        }

    def get(self, strategy: SearchStrategy) -> CircuitBreaker:
        return self._breakers[strategy]

    def reset(self, strategy: Optional[SearchStrategy] = None) -> None:
        targets = [self._breakers[strategy]] if strategy else self._breakers.values()
        for breaker in targets:
            breaker.reset()

    def force_open(self, strategy: SearchStrategy) -> None:
        self._breakers[strategy].force_open()

    def stats(self) -> dict[str, dict]:
        return {s.value: b.snapshot().to_dict() for s, b in self._breakers.items()}

    def open_strategies(self) -> list[SearchStrategy]:
        return [s for s, b in self._breakers.items() if b.state is BreakerState.OPEN]
