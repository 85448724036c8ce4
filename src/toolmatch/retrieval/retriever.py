"""Candidate retriever: executes one SearchStrategy against the knowledge store.

RagEnhanced: augment the query with matching knowledge entries first.
Adaptive:    derive breadth / threshold / category boost from the QueryType.
Hybrid:      union of RagEnhanced and Adaptive, max similarity per tool.
Legacy:      plain similarity search. Never touches the knowledge base.

Every call is bounded by a timeout. Any failure surfaces as StrategyFailure.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import Optional

from src.toolmatch.errors import FailureKind, StrategyFailure, categorize_error
from src.toolmatch.yaml_config import RetrievalSettings
from src.utils.logger import get_logger

from .base import CatalogStore, KnowledgeStore
from .cache import SearchCache
from .classifier import TASK_TYPE_CATEGORIES, Classification, QueryClassifier
from .models import (
    Candidate,
    KnowledgeMatch,
    QueryType,
    SearchFilter,
    SearchStrategy,
    TaskType,
    UserPreferences,
)
from .quality import extract_quality_components


@dataclass(frozen=True)
class AdaptiveSearchParams:
    """Search parameters derived from the query shape."""
    breadth: float          # multiplier on top_k
    min_similarity: float
    category_boost: float


ADAPTIVE_PARAMS: dict[QueryType, AdaptiveSearchParams] = {
    QueryType.SPECIFIC_TOOL: AdaptiveSearchParams(breadth=0.5, min_similarity=0.3, category_boost=1.0),
    QueryType.FUNCTIONAL: AdaptiveSearchParams(breadth=1.0, min_similarity=0.1, category_boost=1.1),
    QueryType.CATEGORY: AdaptiveSearchParams(breadth=1.5, min_similarity=0.05, category_boost=1.25),
    # Ambiguous queries search wide and lean on reranking
    QueryType.GENERAL: AdaptiveSearchParams(breadth=2.0, min_similarity=0.0, category_boost=1.0),
}


def merge_candidates(*groups: list[Candidate]) -> list[Candidate]:
    """Union candidate lists by toolId, keeping the max similarity per tool."""
    merged: dict[str, Candidate] = {}
    for group in groups:
        for cand in group:
            existing = merged.get(cand.tool_id)
            if existing is None:
                merged[cand.tool_id] = cand
                continue
            best = cand if cand.similarity > existing.similarity else existing
            sources = tuple(dict.fromkeys(existing.knowledge_sources + cand.knowledge_sources))
            merged[cand.tool_id] = replace(best, knowledge_sources=sources)
    return sorted(merged.values(), key=lambda c: (c.similarity, c.tool_id), reverse=True)


class CandidateRetriever:
    """Runs a single retrieval strategy and returns ranked raw candidates."""

    def __init__(
        self,
        store: KnowledgeStore,
        catalog: Optional[CatalogStore] = None,
        classifier: Optional[QueryClassifier] = None,
        settings: Optional[RetrievalSettings] = None,
        cache: Optional[SearchCache] = None,
    ) -> None:
        self.store = store
        if catalog is None and isinstance(store, CatalogStore):
            catalog = store
        self.catalog = catalog
        self.classifier = classifier or QueryClassifier()
        self.settings = settings or RetrievalSettings()
        self.cache = cache
        self.logger = get_logger("Retriever")

    async def search(
        self,
        query: str,
        top_k: int = 10,
        preferences: Optional[UserPreferences] = None,
        strategy: SearchStrategy = SearchStrategy.LEGACY,
        classification: Optional[Classification] = None,
        timeout: Optional[float] = None,
        use_cache: bool = True,
    ) -> list[Candidate]:
        """Execute one strategy, bounded by timeout.

        Returns an empty list for an empty catalog. Raises StrategyFailure
        for any timeout or store error.

        With use_cache=False the store is always queried; fresh results
        still refresh the cache.
        """
        if classification is None:
            classification = self.classifier.classify(query)
        timeout = timeout if timeout is not None else self.settings.call_timeout_seconds

        cache_key = (strategy, query, top_k, preferences, classification.task_type, classification.query_type)
        if self.cache is not None and use_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                return list(cached)

        try:
            candidates = await asyncio.wait_for(
                self._dispatch(query, top_k, preferences, strategy, classification),
                timeout=timeout,
            )
        except StrategyFailure:
            raise
        except asyncio.TimeoutError as e:
            raise StrategyFailure(
                strategy, FailureKind.TIMEOUT, f"search exceeded {timeout:.2f}s", cause=e
            ) from e
        except Exception as e:
            raise StrategyFailure(strategy, categorize_error(e), str(e) or type(e).__name__, cause=e) from e

        if self.cache is not None and candidates:
            self.cache.set(cache_key, tuple(candidates))
        return candidates

    async def _dispatch(
        self,
        query: str,
        top_k: int,
        preferences: Optional[UserPreferences],
        strategy: SearchStrategy,
        classification: Classification,
    ) -> list[Candidate]:
        if strategy is SearchStrategy.RAG_ENHANCED:
            return await self._rag_enhanced(query, top_k, classification)
        if strategy is SearchStrategy.ADAPTIVE:
            return await self._adaptive(query, top_k, preferences, classification)
        if strategy is SearchStrategy.HYBRID:
            return await self._hybrid(query, top_k, preferences, classification)
        return await self._legacy(query, top_k)

    async def _legacy(self, query: str, top_k: int) -> list[Candidate]:
        candidates = await self.store.similarity_search(query, top_k)
        # No quality awareness at retrieval time; catalog signals only feed the reranker
        return await self._hydrate(candidates, task_type=None)

    async def _rag_enhanced(
        self,
        query: str,
        top_k: int,
        classification: Classification,
    ) -> list[Candidate]:
        stats = await self.store.knowledge_stats()
        if (
            stats.total_entries < max(self.settings.rag_min_entries, 1)
            or stats.quality_score <= self.settings.rag_min_quality
        ):
            raise StrategyFailure(
                SearchStrategy.RAG_ENHANCED,
                FailureKind.INSUFFICIENT_KNOWLEDGE,
                f"knowledge base not ready ({stats.total_entries} entries, quality {stats.quality_score:.2f})",
            )

        matches = await self.store.knowledge_search(query, self.settings.knowledge_top_k)
        matches = [m for m in matches if m.similarity >= self.settings.min_knowledge_similarity]
        augmented = self._augment_query(query, matches)
        sources = tuple(m.entry.id for m in matches)

        search_filter = SearchFilter(min_similarity=self.settings.min_similarity)
        if matches:
            plain, enriched = await asyncio.gather(
                self.store.similarity_search(query, top_k, search_filter),
                self.store.similarity_search(augmented, top_k, search_filter),
            )
            enriched = [replace(c, knowledge_sources=sources) for c in enriched]
            candidates = merge_candidates(plain, enriched)[:top_k]
        else:
            candidates = await self.store.similarity_search(query, top_k, search_filter)

        self.logger.debug(
            f"RAG search: {len(matches)} knowledge entries, {len(candidates)} candidates"
        )
        return await self._hydrate(candidates, classification.task_type)

    @staticmethod
    def _augment_query(query: str, matches: list[KnowledgeMatch]) -> str:
        terms: list[str] = [query]
        for match in matches:
            terms.append(match.entry.title)
            terms.extend(match.entry.keywords)
        return " ".join(t for t in terms if t)

    async def _adaptive(
        self,
        query: str,
        top_k: int,
        preferences: Optional[UserPreferences],
        classification: Classification,
    ) -> list[Candidate]:
        params = ADAPTIVE_PARAMS[classification.query_type]
        breadth = max(1, round(top_k * params.breadth))
        candidates = await self.store.similarity_search(
            query, breadth, SearchFilter(min_similarity=params.min_similarity)
        )

        boosted_categories = set(TASK_TYPE_CATEGORIES.get(classification.task_type, ()))
        if preferences is not None and preferences.categories:
            boosted_categories.update(preferences.categories)

        if boosted_categories and params.category_boost != 1.0:
            candidates = [
                replace(c, similarity=min(1.0, c.similarity * params.category_boost))
                if boosted_categories & set(c.categories) else c
                for c in candidates
            ]
            candidates.sort(key=lambda c: (c.similarity, c.tool_id), reverse=True)

        return await self._hydrate(candidates, classification.task_type)

    async def _hybrid(
        self,
        query: str,
        top_k: int,
        preferences: Optional[UserPreferences],
        classification: Classification,
    ) -> list[Candidate]:
        results = await asyncio.gather(
            self._rag_enhanced(query, top_k, classification),
            self._adaptive(query, top_k, preferences, classification),
            return_exceptions=True,
        )
        groups: list[list[Candidate]] = []
        errors: list[BaseException] = []
        for result in results:
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                errors.append(result)
            else:
                groups.append(result)

        if not groups:
            first = errors[0]
            raise StrategyFailure(
                SearchStrategy.HYBRID,
                categorize_error(first),
                f"both component strategies failed: {first}",
                cause=first,
            )
        if errors:
            self.logger.warning(f"⚠️ Hybrid search degraded to one component: {errors[0]}")
        return merge_candidates(*groups)

    async def _hydrate(
        self,
        candidates: list[Candidate],
        task_type: Optional[TaskType],
    ) -> list[Candidate]:
        """Attach catalog metadata and quality components. Best-effort."""
        if not candidates or self.catalog is None:
            return candidates
        try:
            records = await self.catalog.get_tools([c.tool_id for c in candidates])
        except Exception as e:
            self.logger.warning(f"⚠️ Catalog lookup failed, scoring without quality signals: {e}")
            return candidates

        hydrated = []
        for cand in candidates:
            tool = records.get(cand.tool_id)
            if tool is None:
                hydrated.append(cand)
                continue
            hydrated.append(replace(
                cand,
                name=tool.name or cand.name,
                raw_metadata={**cand.raw_metadata, **tool.metadata()},
                quality=extract_quality_components(tool, task_type),
            ))
        return hydrated
