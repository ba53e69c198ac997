"""
Shared fixtures: sample tab snapshots, event histories and a scripted model tier.
"""

import asyncio
from datetime import datetime, timezone

import pytest

from tabgraph_router.agents.model_adapter import ModelAdapter, ModelState
from tabgraph_router.graph.models import EventType, Tab, TabEvent

# 2024-01-01 09:00 UTC
MORNING_MS = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc).timestamp() * 1000
DAY_MS = 24 * 60 * 60 * 1000
MINUTE_MS = 60 * 1000


class FakeAdapter(ModelAdapter):
    """Model tier that replays scripted responses instead of calling an endpoint."""

    def __init__(
        self,
        responses=None,
        model_name: str = "fake-model",
        fail_load: bool = False,
        load_delay: float = 0.0,
        generate_delay: float = 0.0,
        load_timeout_s=None,
    ):
        super().__init__(model_name, load_timeout_s=load_timeout_s)
        self.responses = list(responses or [])
        self.fail_load = fail_load
        self.load_delay = load_delay
        self.generate_delay = generate_delay
        self.load_calls = 0
        self.prompts = []

    async def _load(self):
        self.load_calls += 1
        if self.load_delay:
            await asyncio.sleep(self.load_delay)
        if self.fail_load:
            raise RuntimeError("model weights missing")

    async def _generate(self, prompt, options):
        self.prompts.append(prompt)
        if self.generate_delay:
            await asyncio.sleep(self.generate_delay)
        if not self.responses:
            return ""
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def make_model():
    """Factory for scripted model tiers; ``ready=True`` skips the load step."""

    def factory(*responses, ready: bool = True, **kwargs) -> FakeAdapter:
        adapter = FakeAdapter(responses=responses, **kwargs)
        if ready:
            adapter.state = ModelState.READY
        return adapter

    return factory


@pytest.fixture
def sample_tabs():
    """Two LinkedIn tabs, two GitHub tabs and one unrelated news tab."""
    return [
        Tab(id="1", url="https://www.linkedin.com/feed", title="LinkedIn Feed"),
        Tab(id="2", url="https://www.linkedin.com/jobs", title="LinkedIn Jobs"),
        Tab(id="3", url="https://github.com/org/repo", title="GitHub Repo"),
        Tab(id="4", url="https://github.com/org/issues", title="GitHub Issues"),
        Tab(id="5", url="https://news.example.org/today", title="Morning News"),
    ]


def session_events(tab_ids, start_ms, gap_ms=MINUTE_MS, event_type=EventType.OPEN):
    return [
        TabEvent(type=event_type, tab_id=tab_id, timestamp=start_ms + i * gap_ms)
        for i, tab_id in enumerate(tab_ids)
    ]


@pytest.fixture
def make_session():
    """Factory for one session of evenly spaced events."""
    return session_events


@pytest.fixture
def routine_history():
    """Three morning sessions, one day apart, each opening A -> B -> C a minute apart."""
    events = []
    for day in range(3):
        events.extend(session_events(["A", "B", "C"], MORNING_MS + day * DAY_MS))
    return events
