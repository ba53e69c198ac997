"""
Query routing: classification, tier escalation and metrics.
"""

from tabgraph_router.router.models import RouteName, RemoteAction, RoutingResult
from tabgraph_router.router.classifier import QueryClassifier, QueryProfile
from tabgraph_router.router.metrics import PerformanceMetrics, MetricsStats, RouteStats
from tabgraph_router.router.query_router import QueryRouter

__all__ = [
    "RouteName",
    "RemoteAction",
    "RoutingResult",
    "QueryClassifier",
    "QueryProfile",
    "PerformanceMetrics",
    "MetricsStats",
    "RouteStats",
    "QueryRouter",
]
