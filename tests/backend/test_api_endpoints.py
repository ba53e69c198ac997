"""
Tests for FastAPI backend endpoints.
"""

from fastapi.testclient import TestClient

from tabgraph_router.config import Settings
from tabgraph_router.router.query_router import QueryRouter
from tabgraph_router.server.app import create_app


class TestHealthEndpoint:
    """Tests for GET /health endpoint."""

    def test_health_without_model_tiers(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["models"] == {}
        assert "timestamp" in data


class TestRouteEndpoint:
    """Tests for POST /api/route endpoint."""

    def test_pattern_route(self, client, sample_tabs_data):
        response = client.post("/api/route", json={"query": "close all my linkedin tabs", "tabs": sample_tabs_data})

        assert response.status_code == 200
        data = response.json()
        assert data["route"] == "pattern"
        assert data["action"]["tab_ids"] == ["1", "2"]
        assert data["confidence"] == 0.95
        assert data["success"] is True

    def test_conversational_route(self, client, sample_tabs_data):
        response = client.post("/api/route", json={"query": "hello", "tabs": sample_tabs_data})

        data = response.json()
        assert data["route"] == "direct_llm"
        assert data["action"]["is_conversational"] is True

    def test_grouping_route(self, client, sample_tabs_data):
        response = client.post("/api/route", json={"query": "group my github tabs", "tabs": sample_tabs_data})

        data = response.json()
        assert data["route"] == "compact"
        assert sorted(data["action"]["tab_ids"]) == ["3", "4"]

    def test_remote_disabled_returns_fallback(self, sample_tabs_data):
        router = QueryRouter(settings=Settings(remote_tier_enabled=False))

        with TestClient(create_app(router)) as client:
            response = client.post("/api/route", json={"query": "open 2 new blank tabs", "tabs": sample_tabs_data})

        data = response.json()
        assert response.status_code == 200
        assert data["route"] == "fallback"
        assert data["success"] is False
        assert data["action"]["error"]

    def test_missing_query(self, client):
        response = client.post("/api/route", json={"tabs": []})

        assert response.status_code == 422


class TestGroupEndpoints:
    """Tests for the grouping endpoints."""

    def test_suggest_group(self, client, sample_tabs_data):
        response = client.post(
            "/api/groups/suggest",
            json={"seed_tab_ids": ["1"], "tabs": sample_tabs_data},
        )

        assert response.status_code == 200
        suggestion = response.json()["suggestion"]
        assert sorted(suggestion["tab_ids"]) == ["1", "2"]
        assert suggestion["group_name"].startswith("Linkedin")

    def test_unknown_seed_is_bad_request(self, client, sample_tabs_data):
        response = client.post(
            "/api/groups/suggest",
            json={"seed_tab_ids": ["99"], "tabs": sample_tabs_data},
        )

        assert response.status_code == 400

    def test_multiple_groups(self, client, sample_tabs_data):
        response = client.post("/api/groups/multiple", json={"tabs": sample_tabs_data})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [sorted(g["tab_ids"]) for g in data["groups"]] == [["1", "2"], ["3", "4"]]


class TestEventEndpoints:
    """Tests for event recording and workflow suggestions."""

    def test_record_events(self, client, routine_events):
        response = client.post("/api/events", json={"events": routine_events[:3]})

        assert response.status_code == 200
        assert response.json() == {"status": "success", "recorded": 3, "history_size": 3}

    def test_invalid_event_type(self, client):
        response = client.post(
            "/api/events",
            json={"events": [{"type": "teleport", "tab_id": "1", "timestamp": 0}]},
        )

        assert response.status_code == 422

    def test_workflow_suggestions(self, client, routine_events, sample_tabs_data):
        client.post("/api/events", json={"events": routine_events})

        response = client.post(
            "/api/workflow/suggestions",
            json={"current_tab_ids": ["1", "3"], "tabs": sample_tabs_data},
        )

        assert response.status_code == 200
        suggestions = response.json()["suggestions"]
        next_tabs = [s for s in suggestions if s["type"] == "next_tabs"]
        assert next_tabs[0]["suggested_tabs"] == ["5"]


class TestStatsEndpoint:
    """Tests for GET /api/stats endpoint."""

    def test_stats_before_and_after_graph(self, client, sample_tabs_data):
        data = client.get("/api/stats").json()

        assert data["metrics"]["total"] == 0
        assert data["graph"] is None
        assert data["pattern_rules"] == 13

        client.post("/api/groups/multiple", json={"tabs": sample_tabs_data})
        client.post("/api/route", json={"query": "hello", "tabs": sample_tabs_data})
        data = client.get("/api/stats").json()

        assert data["metrics"]["total"] == 1
        assert data["graph"]["node_count"] == 5


class TestMissingRouter:
    """Requests before startup has created a router."""

    def test_route_returns_503(self):
        client = TestClient(create_app())

        response = client.post("/api/route", json={"query": "hello", "tabs": []})

        assert response.status_code == 503
