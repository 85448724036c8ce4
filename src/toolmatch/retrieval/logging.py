"""Abstract logging interface for recommendation events."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from .models import RecommendationResult, SearchContext

if TYPE_CHECKING:
    from .fallback import StrategyAttempt


class RecommendationLogger(ABC):
    """Abstract interface for recommendation event logging."""

    @abstractmethod
    async def log_recommendation(
        self,
        result: RecommendationResult,
        context: SearchContext,
    ) -> None: ...

    @abstractmethod
    async def log_strategy_failure(
        self,
        attempt: "StrategyAttempt",
        context: SearchContext,
    ) -> None: ...

    @abstractmethod
    async def log_alert(self, alert: Any) -> None: ...


class NullLogger(RecommendationLogger):
    """No-op logger. Default when no logger configured."""

    async def log_recommendation(
        self,
        result: RecommendationResult,
        context: SearchContext,
    ) -> None:
        pass

    async def log_strategy_failure(
        self,
        attempt: "StrategyAttempt",
        context: SearchContext,
    ) -> None:
        pass

    async def log_alert(self, alert: Any) -> None:
        pass
