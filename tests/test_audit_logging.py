"""
Tests for the recommendation audit trail.
"""

import json
import pytest
from pathlib import Path
from src.toolmatch.engine import RecommendationEngine
from src.toolmatch.monitoring.alerts import Alert, AlertCategory, AlertSeverity
from src.toolmatch.retrieval.fallback import StrategyAttempt
from src.toolmatch.retrieval.models import (
    RecommendationResult,
    SearchContext,
    SearchStrategy,
    TaskType,
)
from src.toolmatch.errors import FailureKind
from src.toolmatch.utils.audit import AuditLogger, _sanitize
from src.toolmatch.utils.config import AuditConfig
from tests.utils import ScriptedStore, make_candidate


def _read_entries(audit_logger):
    # Removing the sink drains the enqueue worker
    audit_logger.close()
    with open(audit_logger.log_file, "r") as f:
        return [json.loads(line) for line in f if line.strip()]


def _result(tool_id="figma"):
    return RecommendationResult(
        task_id="t1", task_name="design a logo", tool_id=tool_id, tool_name=tool_id,
        final_score=0.8 if tool_id else 0.0, task_type=TaskType.DESIGN, reason="r",
        confidence_score=0.7, search_duration=0.1, reranking_duration=0.01,
        strategy_used=SearchStrategy.ADAPTIVE if tool_id else None,
    )


class TestAuditLogger:
    """Test suite for AuditLogger functionality."""

    def test_creates_log_directory(self, tmp_path):
        log_path = tmp_path / "audit_logs"
        assert not log_path.exists()
        audit = AuditLogger(log_dir=str(log_path))
        assert log_path.is_dir()
        audit.close()

    def test_config_overrides_params(self, tmp_path):
        audit = AuditLogger(config=AuditConfig(log_dir=str(tmp_path), file_name="custom.jsonl"))
        assert audit.log_file == Path(tmp_path) / "custom.jsonl"
        audit.close()

    @pytest.mark.asyncio
    async def test_recommendation_entry(self, tmp_path):
        audit = AuditLogger(log_dir=str(tmp_path))
        await audit.log_recommendation(_result(), SearchContext(session_id="s1", language="fr"))
        (entry,) = _read_entries(audit)
        assert entry["event_type"] == "recommendation"
        assert entry["tool_id"] == "figma"
        assert entry["strategy"] == "adaptive"
        assert entry["status"] == "success"
        assert entry["context"] == {"session_id": "s1", "language": "fr"}
        assert "timestamp" in entry

    @pytest.mark.asyncio
    async def test_null_result_logged_as_no_match(self, tmp_path):
        audit = AuditLogger(log_dir=str(tmp_path))
        await audit.log_recommendation(_result(tool_id=None), SearchContext())
        (entry,) = _read_entries(audit)
        assert entry["tool_id"] is None
        assert entry["strategy"] is None
        assert entry["status"] == "no_match"

    @pytest.mark.asyncio
    async def test_strategy_failure_entry(self, tmp_path):
        audit = AuditLogger(log_dir=str(tmp_path))
        attempt = StrategyAttempt(SearchStrategy.RAG_ENHANCED, "failure",
                                  kind=FailureKind.TIMEOUT, message="search exceeded 5.00s")
        await audit.log_strategy_failure(attempt, SearchContext())
        (entry,) = _read_entries(audit)
        assert entry["event_type"] == "strategy_failure"
        assert entry["strategy"] == "rag_enhanced"
        assert entry["kind"] == "timeout"
        assert entry["status"] == "error"

    @pytest.mark.asyncio
    async def test_alert_entry(self, tmp_path):
        audit = AuditLogger(log_dir=str(tmp_path))
        alert = Alert("alert-1", AlertSeverity.CRITICAL, AlertCategory.AVAILABILITY, "down",
                      "retrieval", "retrieval.consecutive_failures", 3, 3)
        await audit.log_alert(alert)
        (entry,) = _read_entries(audit)
        assert entry["event_type"] == "alert"
        assert entry["alert"]["metric"] == "retrieval.consecutive_failures"

    @pytest.mark.asyncio
    async def test_engine_writes_through_audit_logger(self, tmp_path):
        audit = AuditLogger(log_dir=str(tmp_path))
        engine = RecommendationEngine(ScriptedStore([make_candidate("a", 0.6)]), event_logger=audit)
        await engine.recommend("write python code")
        entries = _read_entries(audit)
        assert [e["event_type"] for e in entries] == ["strategy_failure", "recommendation"]
        assert entries[0]["kind"] == "insufficient_knowledge"
        assert entries[1]["tool_id"] == "a"

    @pytest.mark.asyncio
    async def test_multiple_entries_are_jsonl(self, tmp_path):
        audit = AuditLogger(log_dir=str(tmp_path))
        for _ in range(3):
            await audit.log_recommendation(_result(), SearchContext())
        assert len(_read_entries(audit)) == 3


def test_sanitize_redacts_sensitive_keys():
    data = {"session_id": "s", "api_key": "x", "nested": {"Bearer": "y", "ok": 1}}
    assert _sanitize(data) == {
        "session_id": "s",
        "api_key": "***REDACTED***",
        "nested": {"Bearer": "***REDACTED***", "ok": 1},
    }
    assert _sanitize(None) is None
