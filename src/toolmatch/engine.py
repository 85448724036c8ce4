"""Recommendation engine: Classifier → Fallback Chain → Reranker → result.

Constructed once at process start and passed by reference. recommend()
never raises for well-formed input; every failure becomes a result with
tool_id=None and an explanatory reason.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from src.toolmatch.batch import BatchOrchestrator
from src.toolmatch.monitoring.metrics import RECOMMENDATION_LATENCY, MetricsRecorder
from src.toolmatch.retrieval.base import CatalogStore, KnowledgeStore
from src.toolmatch.retrieval.breaker import BreakerRegistry
from src.toolmatch.retrieval.cache import SearchCache
from src.toolmatch.retrieval.classifier import Classification, QueryClassifier
from src.toolmatch.retrieval.fallback import ChainOutcome, StrategyFallbackChain
from src.toolmatch.retrieval.logging import NullLogger, RecommendationLogger
from src.toolmatch.retrieval.models import (
    KnowledgeStats,
    RecommendationResult,
    SearchContext,
    Task,
    UserPreferences,
)
from src.toolmatch.retrieval.ranker import RankedCandidate, Reranker
from src.toolmatch.retrieval.retriever import CandidateRetriever
from src.toolmatch.yaml_config import ToolMatchConfig
from src.utils.logger import get_logger

if TYPE_CHECKING:
    from src.toolmatch.monitoring.health import HealthMonitor, HealthReport


class RecommendationEngine:
    """Public entry point for single and batch recommendations."""

    def __init__(
        self,
        store: KnowledgeStore,
        catalog: Optional[CatalogStore] = None,
        config: Optional[ToolMatchConfig] = None,
        classifier: Optional[QueryClassifier] = None,
        breakers: Optional[BreakerRegistry] = None,
        metrics: Optional[MetricsRecorder] = None,
        event_logger: Optional[RecommendationLogger] = None,
    ) -> None:
        self.config = config or ToolMatchConfig()
        retrieval = self.config.retrieval
        self.store = store
        self.classifier = classifier or QueryClassifier()
        self.cache: SearchCache = SearchCache(
            max_entries=retrieval.cache_max_entries,
            ttl_seconds=retrieval.cache_ttl_seconds,
        )
        self.retriever = CandidateRetriever(
            store,
            catalog=catalog,
            classifier=self.classifier,
            settings=retrieval,
            cache=self.cache,
        )
        self.breakers = breakers or BreakerRegistry(
            failure_threshold=self.config.breaker.failure_threshold,
            cooldown_seconds=self.config.breaker.cooldown_seconds,
        )
        self.chain = StrategyFallbackChain(
            self.retriever,
            self.breakers,
            call_timeout=retrieval.call_timeout_seconds,
        )
        self.reranker = Reranker()
        self.metrics = metrics or MetricsRecorder(capacity=self.config.monitor.metrics_capacity)
        self.event_logger: RecommendationLogger = event_logger or NullLogger()
        self.batch = BatchOrchestrator(self, self.config.batch)
        self.monitor: Optional["HealthMonitor"] = None
        self.logger = get_logger("Engine")

    async def refresh_known_tools(self) -> int:
        """Teach the classifier the catalog's tool names (for SPECIFIC_TOOL queries)."""
        catalog = self.retriever.catalog
        if catalog is None:
            return 0
        tools = await catalog.list_tools()
        self.classifier.set_known_tools(t.name for t in tools)
        return len(tools)

    async def recommend(
        self,
        task: Union[Task, str],
        preferences: Optional[UserPreferences] = None,
        context: Optional[SearchContext] = None,
        use_cache: bool = True,
    ) -> RecommendationResult:
        """Recommend one tool for a task. Emits one metric per call.

        use_cache=False sends every strategy call to the store. Health
        probes use it.
        """
        if not isinstance(task, Task):
            name = task if isinstance(task, str) else ""
            task = Task(id=f"task-{uuid.uuid4().hex[:8]}", name=name)
        context = context or SearchContext()
        start = time.perf_counter()

        classification = self.classifier.classify(task.name)
        outcome = "success"
        chain: Optional[ChainOutcome] = None
        try:
            if not isinstance(task.name, str) or not task.name.strip():
                outcome = "no_match"
                result = self._null_result(task, classification, "Task description is empty")
            else:
                chain = await self.chain.run(
                    task.name,
                    self.config.retrieval.candidate_count,
                    preferences,
                    classification,
                    use_cache=use_cache,
                )
                result, outcome = self._build_result(task, classification, preferences, chain)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"❌ Unexpected error recommending for {task.id}: {e}")
            outcome = "error"
            result = self._null_result(task, classification, "Internal error while recommending")

        self.metrics.record(
            RECOMMENDATION_LATENCY,
            (time.perf_counter() - start) * 1000.0,
            unit="ms",
            tags={
                "outcome": outcome,
                "strategy": result.strategy_used.value if result.strategy_used else "none",
                "task_type": result.task_type.value,
                "query_type": classification.query_type.value,
                "session_id": context.session_id,
                "language": context.language,
            },
        )
        await self._audit(result, context, chain)
        return result

    def _build_result(
        self,
        task: Task,
        classification: Classification,
        preferences: Optional[UserPreferences],
        chain: ChainOutcome,
    ) -> tuple[RecommendationResult, str]:
        if chain.exhausted:
            kinds = ", ".join(
                f"{a.strategy.value}: {a.kind.value}" for a in chain.failures if a.kind
            ) or "all strategies unavailable"
            result = self._null_result(
                task, classification,
                f"No recommendation available: every retrieval strategy failed ({kinds})",
                search_duration=chain.search_duration,
            )
            return result, "exhausted"

        rerank = self.reranker.rerank(chain.candidates, classification.task_type, preferences)
        best = rerank.best
        if best is None:
            if rerank.filtered_out:
                reason = f"No tool matched: all {rerank.filtered_out} candidates were excluded by your preferences"
            else:
                reason = "No tool in the catalog matched this task"
            result = self._null_result(
                task, classification, reason,
                search_duration=chain.search_duration,
                reranking_duration=rerank.duration,
                strategy=chain.strategy,
            )
            return result, "no_match"

        return self._success_result(task, classification, chain, best, rerank.duration), "success"

    @staticmethod
    def _confidence(best: RankedCandidate, classification: Classification) -> float:
        # Scaled down when the task type itself was a guess
        return round(max(0.0, min(1.0, best.final_score * (0.7 + 0.3 * classification.confidence))), 4)

    def _success_result(
        self,
        task: Task,
        classification: Classification,
        chain: ChainOutcome,
        best: RankedCandidate,
        reranking_duration: float,
    ) -> RecommendationResult:
        return RecommendationResult(
            task_id=task.id,
            task_name=task.name,
            tool_id=best.candidate.tool_id,
            tool_name=best.candidate.name,
            final_score=best.final_score,
            task_type=classification.task_type,
            reason=best.reason,
            confidence_score=self._confidence(best, classification),
            search_duration=round(chain.search_duration, 6),
            reranking_duration=round(reranking_duration, 6),
            strategy_used=chain.strategy,
            similarity=round(best.candidate.similarity, 4),
            quality_score=best.quality_score,
            query_type=classification.query_type,
            knowledge_sources=best.candidate.knowledge_sources,
        )

    @staticmethod
    def _null_result(
        task: Task,
        classification: Classification,
        reason: str,
        search_duration: float = 0.0,
        reranking_duration: float = 0.0,
        strategy=None,
    ) -> RecommendationResult:
        return RecommendationResult(
            task_id=task.id,
            task_name=task.name if isinstance(task.name, str) else "",
            tool_id=None,
            tool_name=None,
            final_score=0.0,
            task_type=classification.task_type,
            reason=reason,
            confidence_score=0.0,
            search_duration=round(search_duration, 6),
            reranking_duration=round(reranking_duration, 6),
            strategy_used=strategy,
            query_type=classification.query_type,
        )

    async def _audit(
        self,
        result: RecommendationResult,
        context: SearchContext,
        chain: Optional[ChainOutcome],
    ) -> None:
        try:
            if chain is not None:
                for attempt in chain.failures:
                    await self.event_logger.log_strategy_failure(attempt, context)
            await self.event_logger.log_recommendation(result, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"⚠️ Failed to write audit entry: {e}")

    async def recommend_batch(
        self,
        tasks: Iterable[Any],
        preferences: Optional[UserPreferences] = None,
        context: Optional[SearchContext] = None,
        workflow_id: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> list[RecommendationResult]:
        """One result per task, in input order."""
        return await self.batch.run(tasks, preferences, context, workflow_id, mode)

    def get_health(self) -> "HealthReport":
        from src.toolmatch.monitoring.health import HealthReport

        if self.monitor is None:
            return HealthReport.empty()
        return self.monitor.get_health()

    async def knowledge_stats(self) -> KnowledgeStats:
        return await self.store.knowledge_stats()

    def clear_caches(self) -> None:
        stats = self.cache.stats()
        self.cache.clear()
        self.logger.info(f"🧹 Cleared search cache ({stats.entries} entries)")
