"""Retrieval layer: classification, candidate search, reranking and fallback."""

from .base import CatalogStore, KnowledgeStore
from .classifier import Classification, QueryClassifier
from .logging import NullLogger, RecommendationLogger
from .memory_store import InMemoryToolStore
from .models import (
    Candidate,
    QueryType,
    RecommendationResult,
    SearchContext,
    SearchStrategy,
    Task,
    TaskType,
    UserPreferences,
)

__all__ = [
    "Candidate",
    "CatalogStore",
    "Classification",
    "InMemoryToolStore",
    "KnowledgeStore",
    "NullLogger",
    "QueryClassifier",
    "QueryType",
    "RecommendationLogger",
    "RecommendationResult",
    "SearchContext",
    "SearchStrategy",
    "Task",
    "TaskType",
    "UserPreferences",
]
