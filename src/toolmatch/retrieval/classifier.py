"""Query classifier: free-text task description → TaskType + QueryType.

Pure functions over keyword tables. The most specific match wins: a
multi-word phrase beats a single word, a longer word beats a shorter one,
and only then does the number of matches count.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from src.toolmatch.utils.keyword_matcher import find_keyword_matches

from .keyword import tokenize
from .models import QueryType, TaskType

TASK_KEYWORDS: dict[TaskType, tuple[str, ...]] = {
    TaskType.CODING: (
        "code", "coding", "programming", "program", "develop", "developer",
        "implement", "function", "api", "algorithm", "debug", "deploy",
        "python", "javascript", "typescript", "java", "script", "scraper",
        "web scraper", "unit test", "refactor", "backend", "frontend",
        "database", "sql", "bug", "repository", "git", "compile",
    ),
    TaskType.MATH: (
        "math", "mathematical", "calculate", "calculation", "equation",
        "statistics", "statistical", "computation", "probability", "algebra",
        "calculus", "proof", "formula",
    ),
    TaskType.ANALYSIS: (
        "analysis", "analyze", "analyse", "data analysis", "data visualization",
        "insight", "dashboard", "report", "research", "market research",
        "forecast", "spreadsheet", "metrics", "trend",
    ),
    TaskType.DESIGN: (
        "design", "visual", "graphic", "ui", "ux", "interface", "prototype",
        "mockup", "wireframe", "logo", "illustration", "image", "banner",
        "presentation slides",
    ),
    TaskType.WRITING: (
        "write", "writing", "content", "document", "documentation", "article",
        "blog", "blog post", "copy", "copywriting", "text", "essay", "summary",
        "summarize", "proofread", "translate", "story",
    ),
    TaskType.COMMUNICATION: (
        "communication", "collaborate", "collaboration", "team", "meeting",
        "chat", "message", "email", "notification", "schedule", "slack",
        "announce",
    ),
}

# Tie-break order when two task types match equally well
_PRIORITY: tuple[TaskType, ...] = (
    TaskType.CODING,
    TaskType.MATH,
    TaskType.ANALYSIS,
    TaskType.DESIGN,
    TaskType.WRITING,
    TaskType.COMMUNICATION,
)

# Catalog categories that serve each task type (used for adaptive category boosts)
TASK_TYPE_CATEGORIES: dict[TaskType, tuple[str, ...]] = {
    TaskType.CODING: ("coding", "development", "developer tools", "automation"),
    TaskType.MATH: ("math", "education", "research"),
    TaskType.ANALYSIS: ("analytics", "data", "research", "business intelligence"),
    TaskType.DESIGN: ("design", "image", "video", "presentation"),
    TaskType.WRITING: ("writing", "content", "productivity", "translation"),
    TaskType.COMMUNICATION: ("communication", "collaboration", "productivity"),
    TaskType.GENERAL: (),
}

_CATEGORY_NOUNS = frozenset({"tool", "tools", "app", "apps", "software", "platform", "service"})

LOW_CONFIDENCE_THRESHOLD = 0.4


@dataclass(frozen=True)
class Classification:
    task_type: TaskType
    query_type: QueryType
    confidence: float
    matched_keywords: tuple[str, ...] = ()

    @property
    def low_confidence(self) -> bool:
        return self.confidence < LOW_CONFIDENCE_THRESHOLD

    @property
    def is_ambiguous(self) -> bool:
        return self.query_type is QueryType.GENERAL


def _specificity(matches: list[str]) -> tuple[int, int, int]:
    """(words in longest match, chars in longest match, match count)."""
    if not matches:
        return (0, 0, 0)
    longest = max(matches, key=lambda m: (len(m.split()), len(m)))
    return (len(longest.split()), len(longest), len(matches))


class QueryClassifier:
    """Maps a task description to a TaskType and an ambiguity-aware QueryType."""

    def __init__(self, known_tool_names: Iterable[str] = ()) -> None:
        self._known_tools: tuple[str, ...] = ()
        self.set_known_tools(known_tool_names)

    def set_known_tools(self, names: Iterable[str]) -> None:
        """Tool names whose mention marks a query as SPECIFIC_TOOL."""
        self._known_tools = tuple(sorted({n.strip().lower() for n in names if n and n.strip()}))

    def detect_task_type(self, text: Optional[str]) -> TaskType:
        return self.classify(text).task_type

    def classify(self, text: Optional[str]) -> Classification:
        """Classify a task description. Never raises; empty input is low-confidence GENERAL."""
        if not isinstance(text, str) or not text.strip():
            return Classification(TaskType.GENERAL, QueryType.GENERAL, 0.0)

        matches_by_type = {
            task_type: find_keyword_matches(text, keywords)
            for task_type, keywords in TASK_KEYWORDS.items()
        }
        total_matches = sum(len(m) for m in matches_by_type.values())

        best_type = TaskType.GENERAL
        best_key = (0, 0, 0)
        for task_type in _PRIORITY:
            key = _specificity(matches_by_type[task_type])
            if key > best_key:
                best_type, best_key = task_type, key

        tokens = tokenize(text)
        query_type = self._query_type(text, tokens, total_matches)

        if best_type is TaskType.GENERAL:
            confidence = 0.3 if tokens else 0.1
            matched: tuple[str, ...] = ()
        else:
            matched = tuple(matches_by_type[best_type])
            share = len(matched) / total_matches
            # Multi-word phrases are strong evidence on their own
            phrase_bonus = 0.1 if best_key[0] > 1 else 0.0
            confidence = min(1.0, 0.45 + 0.4 * share + 0.05 * (len(matched) - 1) + phrase_bonus)
            if query_type is QueryType.GENERAL:
                confidence *= 0.8

        return Classification(
            task_type=best_type,
            query_type=query_type,
            confidence=round(confidence, 4),
            matched_keywords=matched,
        )

    def _query_type(self, text: str, tokens: list[str], keyword_matches: int) -> QueryType:
        if not tokens:
            return QueryType.GENERAL
        if self._known_tools and find_keyword_matches(text, self._known_tools):
            return QueryType.SPECIFIC_TOOL
        if keyword_matches == 0:
            return QueryType.GENERAL
        if len(tokens) <= 2 or (len(tokens) <= 3 and _CATEGORY_NOUNS & set(tokens)):
            return QueryType.CATEGORY
        if len(tokens) > 8 and keyword_matches / len(tokens) < 0.2:
            # Long, rambling description with few domain words
            return QueryType.GENERAL
        return QueryType.FUNCTIONAL
