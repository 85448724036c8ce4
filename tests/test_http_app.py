"""
Tests for the HTTP API: /recommend, /recommend/batch and /health.
"""

import pytest
from unittest.mock import AsyncMock, patch
from starlette.testclient import TestClient

from src.toolmatch.tool_match import ToolMatch, ToolMatchSettings
from tests.utils import NO_MATCH_TASK, sample_config


@pytest.fixture
def tool_match():
    return ToolMatch(config=sample_config(), monitor_enabled=False)


@pytest.fixture
def client(tool_match):
    # No context manager: lifespan (monitor, audit sink) stays off
    return TestClient(tool_match.create_starlette_app())


class TestRecommendEndpoint:
    def test_returns_result(self, client):
        response = client.post("/recommend", json={"task_name": "Create a data analysis dashboard"})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["tool_id"] == "chartly"
        assert result["task_type"] == "analysis"
        assert 0.0 <= result["final_score"] <= 1.0

    def test_task_id_and_preferences(self, client):
        response = client.post("/recommend", json={
            "task_id": "wf-7",
            "task_name": "Build a python web scraper for crawling websites",
            "preferences": {"freeToolsOnly": True},
            "context": {"session_id": "abc"},
        })
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["task_id"] == "wf-7"
        assert result["tool_id"] == "scrapekit"

    def test_no_match_is_still_ok(self, client):
        response = client.post("/recommend", json={"task_name": NO_MATCH_TASK})
        assert response.status_code == 200
        result = response.json()["result"]
        assert result["tool_id"] is None
        assert result["reason"]

    def test_task_name_is_trimmed(self, client):
        response = client.post("/recommend", json={"task_name": "  Create a data analysis dashboard\n"})
        assert response.status_code == 200
        assert response.json()["result"]["task_name"] == "Create a data analysis dashboard"

    @pytest.mark.parametrize("body", [
        {},
        {"task_name": ""},
        {"task_name": "   \t\n"},
        {"task_name": 42},
    ])
    def test_invalid_payload_is_400(self, client, body):
        response = client.post("/recommend", json=body)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_invalid_preferences_are_400(self, client):
        response = client.post("/recommend", json={
            "task_name": "write code", "preferences": {"budget_range": "unlimited"},
        })
        assert response.status_code == 400
        assert "budget_range" in response.json()["error"]

    def test_malformed_json_is_400(self, client):
        response = client.post("/recommend", content=b"{not json", headers={"content-type": "application/json"})
        assert response.status_code == 400
        assert response.json()["error"] == "Request body must be valid JSON"

    def test_unexpected_error_is_500(self, tool_match, client):
        with patch.object(tool_match.engine, "recommend", AsyncMock(side_effect=RuntimeError("secret detail"))):
            response = client.post("/recommend", json={"task_name": "write code"})
        assert response.status_code == 500
        assert response.json()["detail"] is None


class TestBatchEndpoint:
    def test_results_in_input_order_with_summary(self, client):
        response = client.post("/recommend/batch", json={
            "workflow_id": "wf-1",
            "mode": "parallel",
            "tasks": [
                {"name": "Create a data analysis dashboard"},
                {"id": "custom", "name": NO_MATCH_TASK},
                {"name": "Write a blog post article"},
            ],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["workflow_id"] == "wf-1"
        assert [r["task_id"] for r in data["results"]] == ["task-1", "custom", "task-3"]
        assert data["results"][1]["tool_id"] is None
        assert data["summary"]["total"] == 3
        assert data["summary"]["succeeded"] == 2

    @pytest.mark.parametrize("body", [
        {"tasks": []},
        {"tasks": [{"name": ""}]},
        {"tasks": [{"name": "write code"}, {"name": "  "}]},
        {"tasks": [{"name": "x"}], "mode": "turbo"},
    ])
    def test_invalid_batch_is_400(self, client, body):
        assert client.post("/recommend/batch", json=body).status_code == 400


class TestHealthEndpoint:
    def test_health_before_any_probe(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["overall"] == "healthy"
        assert data["monitor_running"] is False
        assert set(data["breakers"]) == {"rag_enhanced", "adaptive", "hybrid", "legacy"}
        assert data["breakers"]["legacy"]["state"] == "closed"
        assert data["cache"]["entries"] == 0

    @pytest.mark.asyncio
    async def test_health_after_probes(self, tool_match, client):
        await tool_match.engine.monitor.tick()
        data = client.get("/health").json()
        assert set(data["components"]) == {"pipeline", "retrieval", "knowledge_base", "error_rate"}
        assert data["components"]["knowledge_base"]["status"] == "healthy"

    def test_lifespan_starts_and_stops_monitor(self):
        tool_match = ToolMatch(config=sample_config(), monitor_enabled=True)
        with TestClient(tool_match.create_starlette_app()) as client:
            assert client.get("/health").json()["monitor_running"] is True
        assert not tool_match.engine.monitor.running


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("TOOLMATCH_PORT", "9100")
    monkeypatch.setenv("TOOLMATCH_MONITOR_ENABLED", "false")
    settings = ToolMatchSettings()
    assert settings.port == 9100
    assert settings.monitor_enabled is False
    assert settings.host == "127.0.0.1"
