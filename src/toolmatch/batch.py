"""Batch orchestration for multi-task workflows.

Sequential mode paces calls with a fixed delay to respect upstream rate
limits. Parallel mode caps in-flight calls with a semaphore. One task's
failure never aborts its siblings.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Iterable, Optional

from src.toolmatch.progress import ProgressEvent, ProgressStage
from src.toolmatch.retrieval.models import (
    RecommendationResult,
    SearchContext,
    Task,
    TaskType,
    UserPreferences,
)
from src.toolmatch.yaml_config import BatchSettings
from src.utils.logger import get_logger

if TYPE_CHECKING:
    from src.toolmatch.engine import RecommendationEngine


@dataclass(frozen=True)
class BatchSummary:
    """Aggregates over successful results only."""
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    average_final_score: float = 0.0
    average_search_duration: float = 0.0
    average_reranking_duration: float = 0.0
    strategy_counts: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_results(cls, results: Iterable[RecommendationResult]) -> "BatchSummary":
        results = list(results)
        ok = [r for r in results if r.succeeded]
        if not ok:
            return cls(total=len(results), failed=len(results))

        counts = Counter(r.strategy_used.value for r in ok if r.strategy_used)
        return cls(
            total=len(results),
            succeeded=len(ok),
            failed=len(results) - len(ok),
            average_final_score=sum(r.final_score for r in ok) / len(ok),
            average_search_duration=sum(r.search_duration for r in ok) / len(ok),
            average_reranking_duration=sum(r.reranking_duration for r in ok) / len(ok),
            strategy_counts=dict(counts),
        )

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "average_final_score": round(self.average_final_score, 4),
            "average_search_duration": round(self.average_search_duration, 4),
            "average_reranking_duration": round(self.average_reranking_duration, 4),
            "strategy_counts": dict(self.strategy_counts),
        }


class BatchOrchestrator:
    """Runs N tasks through the engine and returns results in input order."""

    def __init__(
        self,
        engine: "RecommendationEngine",
        settings: Optional[BatchSettings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.settings = settings or BatchSettings()
        self._sleep = sleep
        self.logger = get_logger("BatchOrchestrator")

    async def run(
        self,
        tasks: Iterable[Any],
        preferences: Optional[UserPreferences] = None,
        context: Optional[SearchContext] = None,
        workflow_id: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> list[RecommendationResult]:
        """Return exactly one result per input task, in input order."""
        items = [Task.coerce(t, i) for i, t in enumerate(tasks)]
        mode = mode or self.settings.mode
        label = f"workflow {workflow_id}" if workflow_id else "batch"
        self.logger.info(f"📦 Running {label}: {len(items)} task(s), {mode} mode")

        if mode == "parallel":
            semaphore = asyncio.Semaphore(self.settings.max_concurrency)
            results = await asyncio.gather(*(
                self._guarded(semaphore, task, preferences, context) for task in items
            ))
            results = list(results)
        else:
            results = []
            for i, task in enumerate(items):
                if i > 0 and self.settings.inter_call_delay_seconds > 0:
                    await self._sleep(self.settings.inter_call_delay_seconds)
                results.append(await self._run_one(task, preferences, context))

        summary = BatchSummary.from_results(results)
        self.logger.info(f"✅ Finished {label}: {summary.succeeded}/{summary.total} recommended")
        return results

    async def stream(
        self,
        tasks: Iterable[Any],
        preferences: Optional[UserPreferences] = None,
        context: Optional[SearchContext] = None,
        workflow_id: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """Yield progress events, ending with exactly one COMPLETE or ERROR.

        Closing the generator early cancels any work still in flight.
        """
        pending: list[asyncio.Future] = []
        try:
            items = [Task.coerce(t, i) for i, t in enumerate(tasks)]
            total = len(items)
            mode = mode or self.settings.mode
            yield ProgressEvent(ProgressStage.STARTED, 0.0, f"Processing {total} task(s)")

            results: list[Optional[RecommendationResult]] = [None] * total
            done = 0
            if mode == "parallel":
                semaphore = asyncio.Semaphore(self.settings.max_concurrency)
                pending = [
                    asyncio.ensure_future(self._indexed(i, semaphore, task, preferences, context))
                    for i, task in enumerate(items)
                ]
                for next_done in asyncio.as_completed(pending):
                    index, result = await next_done
                    results[index] = result
                    done += 1
                    yield ProgressEvent(
                        ProgressStage.TASK_COMPLETED, done / total,
                        f"Finished {result.task_name!r}", result=result,
                    )
            else:
                for i, task in enumerate(items):
                    if i > 0 and self.settings.inter_call_delay_seconds > 0:
                        await self._sleep(self.settings.inter_call_delay_seconds)
                    yield ProgressEvent(
                        ProgressStage.TASK_STARTED, i / total, f"Recommending a tool for {task.name!r}"
                    )
                    result = await self._run_one(task, preferences, context)
                    results[i] = result
                    done += 1
                    yield ProgressEvent(
                        ProgressStage.TASK_COMPLETED, done / total,
                        f"Finished {task.name!r}", result=result,
                    )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"❌ Batch stream failed: {e}")
            yield ProgressEvent(ProgressStage.ERROR, 0.0, str(e))
            return
        finally:
            for fut in pending:
                if not fut.done():
                    fut.cancel()

        summary = BatchSummary.from_results(r for r in results if r is not None)
        label = f"workflow {workflow_id}" if workflow_id else "batch"
        yield ProgressEvent(
            ProgressStage.COMPLETE, 1.0,
            f"Completed {label}: {summary.succeeded}/{summary.total} recommended",
            results=tuple(r for r in results if r is not None),
        )

    async def _guarded(
        self,
        semaphore: asyncio.Semaphore,
        task: Task,
        preferences: Optional[UserPreferences],
        context: Optional[SearchContext],
    ) -> RecommendationResult:
        async with semaphore:
            return await self._run_one(task, preferences, context)

    async def _indexed(self, index, semaphore, task, preferences, context):
        return index, await self._guarded(semaphore, task, preferences, context)

    async def _run_one(
        self,
        task: Task,
        preferences: Optional[UserPreferences],
        context: Optional[SearchContext],
    ) -> RecommendationResult:
        try:
            return await self.engine.recommend(task, preferences, context)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # The engine does not raise; this isolates siblings if it ever does
            self.logger.error(f"❌ Task {task.id} failed: {e}")
            return RecommendationResult(
                task_id=task.id,
                task_name=task.name,
                tool_id=None,
                tool_name=None,
                final_score=0.0,
                task_type=TaskType.GENERAL,
                reason=f"Recommendation failed: {e}",
                confidence_score=0.0,
                search_duration=0.0,
                reranking_duration=0.0,
                strategy_used=None,
            )
