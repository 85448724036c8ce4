"""Strategy fallback chain.

Walks RagEnhanced → Adaptive → Hybrid → Legacy, skipping strategies whose
breaker is open, until one returns candidates. Legacy does not depend on the
knowledge base and is always tried.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Optional

from src.toolmatch.errors import FailureKind, StrategyFailure
from src.utils.logger import get_logger

from .breaker import BreakerRegistry, BreakerState
from .classifier import Classification
from .models import FALLBACK_ORDER, Candidate, SearchStrategy, UserPreferences
from .retriever import CandidateRetriever

# Strategies that must produce candidates to count as a success
_REQUIRES_CANDIDATES = frozenset({
    SearchStrategy.RAG_ENHANCED,
    SearchStrategy.ADAPTIVE,
    SearchStrategy.HYBRID,
})


@dataclass(frozen=True)
class StrategyAttempt:
    strategy: SearchStrategy
    outcome: str                      # "success" | "failure" | "skipped"
    kind: Optional[FailureKind] = None
    message: str = ""
    duration: float = 0.0
    candidate_count: int = 0


@dataclass
class ChainOutcome:
    candidates: list[Candidate] = field(default_factory=list)
    strategy: Optional[SearchStrategy] = None
    search_duration: float = 0.0
    attempts: list[StrategyAttempt] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        return self.strategy is None

    @property
    def failures(self) -> list[StrategyAttempt]:
        return [a for a in self.attempts if a.outcome == "failure"]


def _outcome_failure(strategy: SearchStrategy, task: asyncio.Future) -> Optional[StrategyFailure]:
    """Interpret a finished retriever call. None means success."""
    exc = task.exception()
    if exc is not None:
        if isinstance(exc, StrategyFailure):
            return exc
        return StrategyFailure(strategy, FailureKind.UNEXPECTED, str(exc), cause=exc)
    if strategy in _REQUIRES_CANDIDATES and not task.result():
        return StrategyFailure(strategy, FailureKind.EMPTY_RESULT, "no candidates returned")
    return None


class StrategyFallbackChain:
    """Tries strategies in priority order, each behind its own circuit breaker."""

    def __init__(
        self,
        retriever: CandidateRetriever,
        breakers: Optional[BreakerRegistry] = None,
        order: tuple[SearchStrategy, ...] = FALLBACK_ORDER,
        call_timeout: Optional[float] = None,
    ) -> None:
        self.retriever = retriever
        self.breakers = breakers or BreakerRegistry()
        self.order = order
        self.call_timeout = call_timeout
        self._inflight: set[asyncio.Task] = set()
        self.logger = get_logger("FallbackChain")

    async def run(
        self,
        query: str,
        top_k: int,
        preferences: Optional[UserPreferences],
        classification: Classification,
        use_cache: bool = True,
    ) -> ChainOutcome:
        """Return the first successful strategy's candidates.

        Never raises for strategy failures. Exhaustion yields an outcome
        with strategy=None and no candidates.

        A strategy whose breaker is not closed always queries the store,
        so a cached answer can never close it.
        """
        outcome = ChainOutcome()
        start = time.perf_counter()

        for strategy in self.order:
            breaker = self.breakers.get(strategy)
            if not breaker.try_acquire() and strategy is not SearchStrategy.LEGACY:
                outcome.attempts.append(StrategyAttempt(strategy, "skipped"))
                self.logger.debug(f"Skipping {strategy.value}: breaker open")
                continue

            fresh = not use_cache or breaker.state is not BreakerState.CLOSED
            call_start = time.perf_counter()
            task = asyncio.ensure_future(self.retriever.search(
                query,
                top_k=top_k,
                preferences=preferences,
                strategy=strategy,
                classification=classification,
                timeout=self.call_timeout,
                use_cache=not fresh,
            ))
            self._inflight.add(task)
            # Registered before the caller awaits, so the breaker is updated
            # even if the caller is cancelled and the result is discarded.
            task.add_done_callback(lambda t, s=strategy: self._record(s, t))

            # asyncio.wait leaves the inner task running if we are cancelled
            await asyncio.wait({task})

            duration = time.perf_counter() - call_start
            failure = _outcome_failure(strategy, task)
            if failure is None:
                candidates = task.result()
                outcome.attempts.append(StrategyAttempt(
                    strategy, "success", duration=duration, candidate_count=len(candidates)
                ))
                outcome.candidates = candidates
                outcome.strategy = strategy
                break

            outcome.attempts.append(StrategyAttempt(
                strategy, "failure", kind=failure.kind, message=failure.message, duration=duration
            ))
            self.logger.warning(f"⚠️ Strategy {strategy.value} failed ({failure.kind.value}): {failure.message}")

        outcome.search_duration = time.perf_counter() - start
        if outcome.exhausted:
            self.logger.error(f"❌ All strategies exhausted for query: {query[:80]!r}")
        return outcome

    def _record(self, strategy: SearchStrategy, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        breaker = self.breakers.get(strategy)
        if task.cancelled():
            breaker.release_trial()
            return
        if _outcome_failure(strategy, task) is None:
            breaker.record_success()
        else:
            breaker.record_failure()
