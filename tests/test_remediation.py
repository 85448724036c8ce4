"""Tests for automated remediation of critical alerts."""
from src.toolmatch.engine import RecommendationEngine
from src.toolmatch.monitoring.alerts import Alert, AlertCategory, AlertSeverity
from src.toolmatch.monitoring.remediation import IncidentResponder
from src.toolmatch.retrieval.breaker import BreakerState
from src.toolmatch.retrieval.models import SearchStrategy
from tests.utils import ScriptedStore, make_candidate


def _alert(category, severity=AlertSeverity.CRITICAL):
    return Alert("alert-1", severity, category, "t", "retrieval", "retrieval.consecutive_failures", 3, 3)


class TestIncidentResponder:
    def setup_method(self):
        self.engine = RecommendationEngine(ScriptedStore([make_candidate("a", 0.5)]))
        self.responder = IncidentResponder(self.engine)

    def test_ignores_non_critical(self):
        assert self.responder.handle(_alert(AlertCategory.AVAILABILITY, AlertSeverity.WARNING)) == []
        assert list(self.responder.actions) == []

    def test_performance_clears_caches(self):
        self.engine.cache.set("k", ("v",))
        (action,) = self.responder.handle(_alert(AlertCategory.PERFORMANCE))
        assert action.action == "clear_caches"
        assert self.engine.cache.stats().entries == 0

    def test_availability_opens_failing_breakers_except_legacy(self):
        self.engine.breakers.get(SearchStrategy.ADAPTIVE).record_failure()
        self.engine.breakers.get(SearchStrategy.LEGACY).record_failure()
        actions = self.responder.handle(_alert(AlertCategory.AVAILABILITY))
        assert [a.target for a in actions] == ["adaptive"]
        assert self.engine.breakers.get(SearchStrategy.ADAPTIVE).state is BreakerState.OPEN
        assert self.engine.breakers.get(SearchStrategy.LEGACY).state is BreakerState.CLOSED
        assert self.engine.breakers.get(SearchStrategy.RAG_ENHANCED).state is BreakerState.CLOSED

    def test_already_open_breakers_left_alone(self):
        self.engine.breakers.force_open(SearchStrategy.HYBRID)
        assert self.responder.handle(_alert(AlertCategory.ERROR_RATE)) == []

    def test_action_history_is_bounded(self):
        responder = IncidentResponder(self.engine, max_history=2)
        for _ in range(3):
            responder.handle(_alert(AlertCategory.PERFORMANCE))
        assert len(responder.actions) == 2
        assert all(a.action == "clear_caches" for a in responder.actions)
