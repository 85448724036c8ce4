"""Shared builders and fakes for the test suite."""

import asyncio
from collections import Counter, defaultdict
from typing import Iterable, Optional

from src.toolmatch.retrieval.base import CatalogStore, KnowledgeStore
from src.toolmatch.retrieval.classifier import Classification
from src.toolmatch.retrieval.models import (
    Candidate,
    CatalogTool,
    KnowledgeMatch,
    KnowledgeStats,
    QualityComponents,
    QueryType,
    SearchStrategy,
    TaskType,
    parse_pricing,
)
from src.toolmatch.yaml_config import BatchSettings, ToolMatchConfig

SAMPLE_CONFIG = {
    "batch": {"inter_call_delay_seconds": 0},
    "catalog": {
        "tools": [
            {
                "id": "codepilot",
                "name": "CodePilot",
                "description": "AI pair programmer for Python and JavaScript code, APIs and web scraper scripts",
                "categories": ["coding", "developer tools"],
                "pricing": "paid",
                "updated_at": 200,
                "scores": {
                    "benchmarks": {"HumanEval": 90},
                    "user_rating": {"G2": 4.5},
                    "performance_score": 85,
                    "reliability_score": 90,
                },
            },
            {
                "id": "scrapekit",
                "name": "ScrapeKit",
                "description": "Python web scraper framework for crawling websites and extracting data",
                "categories": ["coding", "automation"],
                "pricing": "free",
                "updated_at": 100,
                "scores": {"benchmarks": {"HumanEval": 60}, "user_rating": {"G2": 4.0}},
            },
            {
                "id": "chartly",
                "name": "Chartly",
                "description": "Data analysis dashboard and visualization for spreadsheets and metrics",
                "categories": ["analytics", "data"],
                "pricing": "freemium",
                "scores": {"user_rating": {"Capterra": 4.3}},
            },
            {
                "id": "inkwell",
                "name": "Inkwell",
                "description": "Writing assistant for blog post articles and copywriting content",
                "categories": ["writing", "content"],
                "pricing": "freemium",
                "scores": {"user_rating": {"G2": 4.7}},
            },
            {
                "id": "canvasly",
                "name": "Canvasly",
                "description": "Graphic design tool for logos, banners and presentation slides",
                "categories": ["design", "image"],
                "pricing": "free",
                "scores": {"user_rating": {"G2": 4.4}},
            },
            {
                "id": "mathsolve",
                "name": "MathSolve",
                "description": "Solve math equations, calculus, algebra and statistics problems step by step",
                "categories": ["math", "education"],
                "pricing": "paid",
                "scores": {"benchmarks": {"MATH": 80}},
            },
        ],
        "knowledge": [
            {
                "id": "k-scraping",
                "title": "Web scraping with Python",
                "content": "Scraping websites with Python uses HTTP requests and HTML parsing",
                "keywords": ["scraper", "crawling", "python"],
                "categories": ["coding"],
                "quality": 0.9,
            },
            {
                "id": "k-dashboards",
                "title": "Building dashboards",
                "content": "Dashboards summarize metrics for data analysis",
                "keywords": ["dashboard", "visualization", "analytics"],
                "categories": ["analytics"],
                "quality": 0.8,
            },
        ],
    },
}

NO_MATCH_TASK = "quantum teleportation knitting"


def sample_config(**overrides) -> ToolMatchConfig:
    config = ToolMatchConfig.model_validate(SAMPLE_CONFIG)
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def parallel_batch(max_concurrency: int = 2) -> BatchSettings:
    return BatchSettings(mode="parallel", max_concurrency=max_concurrency, inter_call_delay_seconds=0)


def make_tool(
    tool_id: str,
    name: Optional[str] = None,
    categories: Iterable[str] = ("coding",),
    pricing: str = "free",
    scores: Optional[dict] = None,
    review_average: Optional[float] = None,
    updated_at: float = 0.0,
) -> CatalogTool:
    return CatalogTool(
        tool_id=tool_id,
        name=name or tool_id.title(),
        categories=tuple(categories),
        pricing=parse_pricing(pricing),
        updated_at=updated_at,
        scores=scores or {},
        review_average=review_average,
    )


def make_candidate(
    tool_id: str,
    similarity: float,
    benchmark: Optional[float] = None,
    rating: Optional[float] = None,
    performance: Optional[float] = None,
    reliability: Optional[float] = None,
    pricing: str = "free",
    categories: Iterable[str] = ("coding",),
    updated_at: float = 0.0,
    difficulty: Optional[str] = None,
    knowledge_sources: tuple = (),
) -> Candidate:
    return Candidate(
        tool_id=tool_id,
        name=tool_id.title(),
        similarity=similarity,
        raw_metadata={
            "pricing": pricing,
            "categories": list(categories),
            "updated_at": updated_at,
            "difficulty": difficulty,
        },
        quality=QualityComponents(
            benchmark_score=benchmark,
            user_rating_score=rating,
            performance_score=performance,
            reliability_score=reliability,
        ),
        knowledge_sources=knowledge_sources,
    )


def make_classification(
    task_type: TaskType = TaskType.CODING,
    query_type: QueryType = QueryType.FUNCTIONAL,
    confidence: float = 0.8,
) -> Classification:
    return Classification(task_type, query_type, confidence)


class ScriptedStore(KnowledgeStore, CatalogStore):
    """Store fake returning fixed candidates, with call counting and fault injection."""

    def __init__(
        self,
        candidates: Iterable[Candidate] = (),
        tools: Iterable[CatalogTool] = (),
        knowledge: Iterable[KnowledgeMatch] = (),
        stats: Optional[KnowledgeStats] = None,
        delay: float = 0.0,
    ):
        self.candidates = list(candidates)
        self.tools = {t.tool_id: t for t in tools}
        self.knowledge = list(knowledge)
        self.stats = stats or KnowledgeStats(total_entries=0, quality_score=0.0)
        self.delay = delay
        self.error: Optional[Exception] = None
        self.catalog_error: Optional[Exception] = None
        self.calls = Counter()
        self.queries: list[str] = []

    async def _maybe_fail(self, name: str) -> None:
        self.calls[name] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error

    async def similarity_search(self, query, top_k, search_filter=None):
        await self._maybe_fail("similarity_search")
        self.queries.append(query)
        min_sim = search_filter.min_similarity if search_filter else 0.0
        return [
            Candidate(c.tool_id, c.name, c.similarity, dict(c.raw_metadata), c.quality)
            for c in self.candidates if c.similarity >= min_sim
        ][:top_k]

    async def knowledge_search(self, query, top_k):
        await self._maybe_fail("knowledge_search")
        return self.knowledge[:top_k]

    async def knowledge_stats(self):
        await self._maybe_fail("knowledge_stats")
        return self.stats

    async def get_tools(self, tool_ids):
        self.calls["get_tools"] += 1
        if self.catalog_error is not None:
            raise self.catalog_error
        return {tid: self.tools[tid] for tid in tool_ids if tid in self.tools}

    async def list_tools(self):
        return list(self.tools.values())


class FakeRetriever:
    """Retriever fake for fallback tests. behaviours[strategy] is a list,
    an exception instance, or a callable returning either."""

    def __init__(self, behaviours: Optional[dict] = None, delay: Optional[dict] = None):
        self.behaviours = behaviours or {}
        self.delay = delay or {}
        self.calls = Counter()
        self.cache_flags = defaultdict(list)

    async def search(self, query, top_k=10, preferences=None, strategy=SearchStrategy.LEGACY,
                     classification=None, timeout=None, use_cache=True):
        self.calls[strategy] += 1
        self.cache_flags[strategy].append(use_cache)
        if self.delay.get(strategy):
            await asyncio.sleep(self.delay[strategy])
        behaviour = self.behaviours.get(strategy, [])
        if callable(behaviour):
            behaviour = behaviour()
        if isinstance(behaviour, Exception):
            raise behaviour
        return list(behaviour)


class ManualClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
