"""Core data models for retrieval, reranking and recommendation results."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Optional

from src.toolmatch.errors import InvalidTaskError


class TaskType(str, Enum):
    CODING = "coding"
    MATH = "math"
    ANALYSIS = "analysis"
    GENERAL = "general"
    DESIGN = "design"
    WRITING = "writing"
    COMMUNICATION = "communication"


class QueryType(str, Enum):
    """Ambiguity-aware query shape. GENERAL means the query is ambiguous."""
    SPECIFIC_TOOL = "specific_tool"
    FUNCTIONAL = "functional"
    CATEGORY = "category"
    GENERAL = "general"


class SearchStrategy(str, Enum):
    RAG_ENHANCED = "rag_enhanced"
    ADAPTIVE = "adaptive"
    HYBRID = "hybrid"
    LEGACY = "legacy"


# Fixed priority order walked by the fallback chain
FALLBACK_ORDER: tuple[SearchStrategy, ...] = (
    SearchStrategy.RAG_ENHANCED,
    SearchStrategy.ADAPTIVE,
    SearchStrategy.HYBRID,
    SearchStrategy.LEGACY,
)


class Pricing(str, Enum):
    FREE = "free"
    FREEMIUM = "freemium"
    PAID = "paid"
    ENTERPRISE = "enterprise"
    UNKNOWN = "unknown"


PAID_ONLY_PRICING = frozenset({Pricing.PAID, Pricing.ENTERPRISE})


class BudgetRange(str, Enum):
    FREE = "free"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Pricing tiers admitted by each budget range. UNKNOWN is never excluded.
BUDGET_ALLOWED_PRICING: dict[BudgetRange, frozenset[Pricing]] = {
    BudgetRange.FREE: frozenset({Pricing.FREE, Pricing.UNKNOWN}),
    BudgetRange.LOW: frozenset({Pricing.FREE, Pricing.FREEMIUM, Pricing.UNKNOWN}),
    BudgetRange.MEDIUM: frozenset({Pricing.FREE, Pricing.FREEMIUM, Pricing.PAID, Pricing.UNKNOWN}),
    BudgetRange.HIGH: frozenset(Pricing),
}


def parse_pricing(value: Any) -> Pricing:
    """Lenient pricing parser for store/catalog metadata."""
    if isinstance(value, Pricing):
        return value
    try:
        return Pricing(str(value).strip().lower())
    except ValueError:
        return Pricing.UNKNOWN


@dataclass(frozen=True)
class Task:
    """A caller-created task. Immutable."""
    id: str
    name: str
    order: Optional[int] = None

    @classmethod
    def coerce(cls, value: Any, index: int = 0) -> "Task":
        """Accept a Task, a bare task name or an {id, name, order?} mapping."""
        if isinstance(value, Task):
            return value
        if isinstance(value, str):
            return cls(id=f"task-{index + 1}", name=value)
        if isinstance(value, dict):
            name = value.get("name")
            if not isinstance(name, str):
                raise InvalidTaskError(f"task {index + 1}: name must be a string")
            order = value.get("order")
            if order is not None and (isinstance(order, bool) or not isinstance(order, int)):
                raise InvalidTaskError(f"task {index + 1}: order must be an integer")
            return cls(id=str(value.get("id") or f"task-{index + 1}"), name=name, order=order)
        raise InvalidTaskError(f"task {index + 1}: expected a name or an object with a name")


@dataclass(frozen=True)
class UserPreferences:
    """Optional filters and biases. Every field is None when unset."""
    categories: Optional[tuple[str, ...]] = None
    difficulty_level: Optional[str] = None
    budget_range: Optional[BudgetRange] = None
    free_tools_only: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["UserPreferences"]:
        """Build preferences from a loosely-shaped dict.

        Accepts both snake_case and camelCase keys. Raises InvalidTaskError
        on a shape that cannot be interpreted.
        """
        if data is None:
            return None
        if not isinstance(data, dict):
            raise InvalidTaskError("preferences must be an object")

        categories = data.get("categories")
        if categories is not None:
            if isinstance(categories, str):
                categories = [categories]
            if not isinstance(categories, (list, tuple)) or not all(
                isinstance(c, str) for c in categories
            ):
                raise InvalidTaskError("preferences.categories must be a list of strings")
            categories = tuple(c.strip().lower() for c in categories if c.strip())

        difficulty = data.get("difficulty_level", data.get("difficultyLevel"))
        if difficulty is not None and not isinstance(difficulty, str):
            raise InvalidTaskError("preferences.difficulty_level must be a string")

        budget = data.get("budget_range", data.get("budgetRange"))
        if budget is not None:
            try:
                budget = BudgetRange(str(budget).strip().lower())
            except ValueError:
                raise InvalidTaskError(
                    f"preferences.budget_range must be one of {[b.value for b in BudgetRange]}"
                )

        free_only = data.get("free_tools_only", data.get("freeToolsOnly"))
        if free_only is not None and not isinstance(free_only, bool):
            raise InvalidTaskError("preferences.free_tools_only must be a boolean")

        return cls(
            categories=categories or None,
            difficulty_level=difficulty.lower() if difficulty else None,
            budget_range=budget,
            free_tools_only=free_only,
        )


@dataclass(frozen=True)
class SearchContext:
    """Per-request correlation data. Used for metric tagging only."""
    session_id: str = "anonymous"
    language: str = "en"


@dataclass(frozen=True)
class QualityComponents:
    """Normalized 0..1 quality signals. None means the signal is missing."""
    benchmark_score: Optional[float] = None
    user_rating_score: Optional[float] = None
    performance_score: Optional[float] = None
    reliability_score: Optional[float] = None

    def present(self) -> dict[str, float]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class Candidate:
    """A raw tool match produced by retrieval. Not persisted."""
    tool_id: str
    name: str
    similarity: float
    raw_metadata: dict[str, Any] = field(default_factory=dict)
    quality: QualityComponents = field(default_factory=QualityComponents)
    knowledge_sources: tuple[str, ...] = ()

    @property
    def pricing(self) -> Pricing:
        return parse_pricing(self.raw_metadata.get("pricing"))

    @property
    def categories(self) -> list[str]:
        return [str(c).lower() for c in self.raw_metadata.get("categories") or []]

    @property
    def updated_at(self) -> float:
        value = self.raw_metadata.get("updated_at")
        return float(value) if isinstance(value, (int, float)) else 0.0


@dataclass(frozen=True)
class KnowledgeEntry:
    """Curated text used to enrich a query before catalog search."""
    id: str
    title: str
    content: str
    keywords: tuple[str, ...] = ()
    categories: tuple[str, ...] = ()
    quality: float = 1.0


@dataclass(frozen=True)
class KnowledgeMatch:
    entry: KnowledgeEntry
    similarity: float


@dataclass(frozen=True)
class KnowledgeStats:
    total_entries: int
    quality_score: float
    last_updated: Optional[float] = None


@dataclass(frozen=True)
class SearchFilter:
    """Optional store-side filter for similarity search."""
    categories: Optional[tuple[str, ...]] = None
    min_similarity: float = 0.0


@dataclass(frozen=True)
class CatalogTool:
    """Read-only catalog metadata and review aggregates for one tool."""
    tool_id: str
    name: str
    url: str = ""
    logo_url: str = ""
    categories: tuple[str, ...] = ()
    pricing: Pricing = Pricing.UNKNOWN
    difficulty: Optional[str] = None
    updated_at: float = 0.0
    scores: dict[str, Any] = field(default_factory=dict)
    review_average: Optional[float] = None
    review_count: int = 0

    def metadata(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "logo_url": self.logo_url,
            "categories": list(self.categories),
            "pricing": self.pricing.value,
            "difficulty": self.difficulty,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class RecommendationResult:
    """One result per task. toolId is None when nothing could be recommended."""
    task_id: str
    task_name: str
    tool_id: Optional[str]
    tool_name: Optional[str]
    final_score: float
    task_type: TaskType
    reason: str
    confidence_score: float
    search_duration: float
    reranking_duration: float
    strategy_used: Optional[SearchStrategy]
    similarity: float = 0.0
    quality_score: float = 0.0
    query_type: QueryType = QueryType.GENERAL
    knowledge_sources: tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.tool_id is not None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["task_type"] = self.task_type.value
        data["query_type"] = self.query_type.value
        data["strategy_used"] = self.strategy_used.value if self.strategy_used else None
        data["knowledge_sources"] = list(self.knowledge_sources)
        return data
