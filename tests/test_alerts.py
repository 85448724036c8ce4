"""Tests for alert de-duplication and resolution."""
from src.toolmatch.monitoring.alerts import AlertCategory, AlertManager, AlertSeverity
from tests.utils import ManualClock


def _raise(manager, severity=AlertSeverity.CRITICAL, category=AlertCategory.AVAILABILITY,
           metric="retrieval.consecutive_failures", component="retrieval"):
    return manager.raise_alert(severity, category, "title", component, metric, 3, 3)


class TestAlertManager:
    def setup_method(self):
        self.clock = ManualClock()
        self.manager = AlertManager(dedup_seconds=300, clock=self.clock)

    def test_duplicate_suppressed_within_window(self):
        first = _raise(self.manager)
        assert first is not None
        assert first.id == "alert-1"
        assert _raise(self.manager) is None
        assert len(self.manager.active()) == 1

    def test_duplicate_allowed_after_window(self):
        _raise(self.manager)
        self.clock.advance(301)
        assert _raise(self.manager) is not None
        assert len(self.manager.active()) == 2

    def test_different_severity_or_metric_not_duplicate(self):
        _raise(self.manager)
        assert _raise(self.manager, severity=AlertSeverity.WARNING) is not None
        assert _raise(self.manager, metric="pipeline.consecutive_failures") is not None

    def test_resolved_alert_does_not_suppress(self):
        alert = _raise(self.manager)
        assert self.manager.resolve(alert.id)
        assert not self.manager.resolve(alert.id)
        assert alert.resolved_at == self.clock.now
        assert _raise(self.manager) is not None

    def test_resolve_component_keeps_critical(self):
        critical = _raise(self.manager)
        warning = _raise(self.manager, severity=AlertSeverity.WARNING, metric="retrieval.uptime_pct")
        resolved = self.manager.resolve_component("retrieval")
        assert resolved == [warning]
        assert not critical.resolved
        assert self.manager.resolve_component("retrieval", include_critical=True) == [critical]

    def test_history_bounded(self):
        manager = AlertManager(max_history=2, clock=self.clock)
        for i in range(3):
            _raise(manager, metric=f"m{i}")
        assert [a.metric for a in manager.all()] == ["m1", "m2"]

    def test_to_dict(self):
        data = _raise(self.manager).to_dict()
        assert data["severity"] == "critical"
        assert data["category"] == "availability"
        assert data["resolved"] is False
