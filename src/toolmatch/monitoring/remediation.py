"""Automated remediation for critical alerts. Runs outside the request path."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from src.toolmatch.monitoring.alerts import Alert, AlertCategory, AlertSeverity
from src.toolmatch.retrieval.models import SearchStrategy
from src.utils.logger import get_logger

if TYPE_CHECKING:
    from src.toolmatch.engine import RecommendationEngine


@dataclass(frozen=True)
class RemediationAction:
    alert_id: str
    action: str
    target: str
    timestamp: float


class IncidentResponder:
    """Maps critical alerts to corrective actions on the engine.

    performance → clear caches.
    availability / error_rate → force-open the breakers of failing
    strategies so traffic goes straight to healthier ones. Legacy is never
    forced open.
    """

    def __init__(
        self,
        engine: "RecommendationEngine",
        max_history: int = 500,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.engine = engine
        self._clock = clock
        self.actions: deque[RemediationAction] = deque(maxlen=max_history)
        self.logger = get_logger("IncidentResponder")

    def handle(self, alert: Alert) -> list[RemediationAction]:
        if alert.severity is not AlertSeverity.CRITICAL:
            return []

        taken: list[RemediationAction] = []
        if alert.category is AlertCategory.PERFORMANCE:
            self.engine.clear_caches()
            taken.append(self._note(alert, "clear_caches", "search_cache"))
        elif alert.category in (AlertCategory.AVAILABILITY, AlertCategory.ERROR_RATE):
            for name, stats in self.engine.breakers.stats().items():
                strategy = SearchStrategy(name)
                if strategy is SearchStrategy.LEGACY or stats["state"] == "open":
                    continue
                if stats["consecutive_failures"] > 0:
                    self.engine.breakers.force_open(strategy)
                    taken.append(self._note(alert, "force_open_breaker", strategy.value))

        for action in taken:
            self.logger.warning(f"🛠️ Remediation for {alert.id}: {action.action} ({action.target})")
        return taken

    def _note(self, alert: Alert, action: str, target: str) -> RemediationAction:
        entry = RemediationAction(alert.id, action, target, self._clock())
        self.actions.append(entry)
        return entry
