"""
Simple example routing a few commands through the tiers without any model endpoint.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tabgraph_router.config import Settings, setup_logging
from tabgraph_router.graph.models import EventType, Tab, TabEvent
from tabgraph_router.router.query_router import QueryRouter

DAY_MS = 24 * 60 * 60 * 1000


async def main():
    """Run a simple example."""
    print("=== Tiered Tab Query Routing Example ===\n")

    setup_logging("WARNING")
    router = QueryRouter(settings=Settings())

    tabs = [
        Tab(id="1", url="https://www.linkedin.com/feed", title="LinkedIn Feed"),
        Tab(id="2", url="https://www.linkedin.com/jobs", title="LinkedIn Jobs"),
        Tab(id="3", url="https://github.com/org/repo", title="GitHub Repo"),
        Tab(id="4", url="https://github.com/org/issues", title="GitHub Issues"),
        Tab(id="5", url="https://news.example.org/today", title="Morning News"),
    ]

    # 1. Routing
    print("1. Routing queries...\n")
    for query in [
        "hello",
        "close all my linkedin tabs",
        "group my github tabs",
        "open 2 new blank tabs",
        "analyze my research tabs and then close the unrelated ones",
    ]:
        result = await router.route(query, tabs)
        print(f"  {query!r}")
        print(f"    route={result.route.value} confidence={result.confidence:.2f} model={result.model}")

    # 2. Grouping
    print("\n2. Suggesting groups...")
    for group in await router.grouping_engine.suggest_multiple_groups(tabs):
        print(f"  {group.group_name}: {group.tab_ids} ({group.confidence:.0%}) {group.reason or ''}")

    # 3. Workflow patterns
    print("\n3. Mining a morning routine...")
    start = 1_704_099_600_000
    for day in range(3):
        for i, tab_id in enumerate(["5", "1", "3"]):
            router.record_event(TabEvent(type=EventType.OPEN, tab_id=tab_id, timestamp=start + day * DAY_MS + i * 60_000))

    suggestions = router.grouping_engine.get_workflow_suggestions(
        ["5", "1"], [t.id for t in tabs], tab_names={t.id: t.title for t in tabs}
    )
    for suggestion in suggestions:
        print(f"  [{suggestion.type.value}] {suggestion.message} ({suggestion.confidence:.0%})")

    # 4. Metrics
    stats = router.get_metrics()
    print(f"\n4. Routed {stats.total} queries, avg {stats.avg_latency_ms:.1f} ms")
    for route, share in stats.route_percentages.items():
        if share:
            print(f"  {route}: {share:.0f}%")

    print("\n=== Example completed successfully! ===")


if __name__ == "__main__":
    asyncio.run(main())
