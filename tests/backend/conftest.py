"""
Pytest configuration and fixtures for backend API tests.
"""

import pytest
from fastapi.testclient import TestClient

from tabgraph_router.config import Settings
from tabgraph_router.router.query_router import QueryRouter
from tabgraph_router.server.app import create_app


@pytest.fixture
def test_settings():
    """Settings that do not depend on a .env file or a model endpoint."""
    return Settings(
        model_api_base_url="http://localhost:9/v1",
        compact_tier_timeout_s=2.0,
        reasoning_tier_timeout_s=2.0,
    )


@pytest.fixture
def router(test_settings):
    """Router without model tiers (pattern, heuristic and graph paths only)."""
    return QueryRouter(settings=test_settings)


@pytest.fixture
def client(router):
    """Test client bound to one event loop for the whole test."""
    with TestClient(create_app(router)) as client:
        yield client


@pytest.fixture
def sample_tabs_data():
    """Sample tab data for testing API endpoints."""
    return [
        {"id": 1, "url": "https://www.linkedin.com/feed", "title": "LinkedIn Feed"},
        {"id": 2, "url": "https://www.linkedin.com/jobs", "title": "LinkedIn Jobs"},
        {"id": 3, "url": "https://github.com/org/repo", "title": "GitHub Repo"},
        {"id": 4, "url": "https://github.com/org/issues", "title": "GitHub Issues"},
        {"id": 5, "url": "https://news.example.org/today", "title": "Morning News", "pinned": True},
    ]


@pytest.fixture
def routine_events():
    """Three sessions, a day apart, each opening tabs 1 -> 3 -> 5."""
    day_ms = 24 * 60 * 60 * 1000
    events = []
    for day in range(3):
        for i, tab_id in enumerate(["1", "3", "5"]):
            events.append({
                "type": "open",
                "tab_id": tab_id,
                "timestamp": 1_704_099_600_000 + day * day_ms + i * 60_000,
            })
    return events
