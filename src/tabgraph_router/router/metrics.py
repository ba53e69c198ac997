"""
Per-route performance metrics.
"""

import math
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

from pydantic import BaseModel, Field

from tabgraph_router.config import get_logger
from tabgraph_router.router.models import RouteName

logger = get_logger(__name__)

DEFAULT_MAX_SAMPLES = 1000


@dataclass(frozen=True)
class MetricSample:
    route: str
    latency_ms: float
    success: bool
    query: str = ""
    confidence: Optional[float] = None
    model: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


class RouteStats(BaseModel):
    count: int
    avg_latency_ms: float
    success_rate: float
    p95_latency_ms: float


class MetricsStats(BaseModel):
    """Aggregates over the retained samples (success rate and shares in percent)."""

    total: int = 0
    avg_latency_ms: float = 0.0
    route_breakdown: dict[str, RouteStats] = Field(default_factory=dict)
    route_percentages: dict[str, float] = Field(default_factory=dict)


def percentile(values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile; 0 for no values."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil(p / 100 * len(ordered)) - 1
    return ordered[max(0, index)]


def _average(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


class PerformanceMetrics:
    """Bounded buffer of routing samples (oldest evicted first)."""

    def __init__(self, max_samples: int = DEFAULT_MAX_SAMPLES):
        self._samples: deque[MetricSample] = deque(maxlen=max_samples)

    def record(
        self,
        route: Union[RouteName, str],
        latency_ms: float,
        success: bool,
        query: str = "",
        confidence: Optional[float] = None,
        model: Optional[str] = None,
    ) -> None:
        name = route.value if isinstance(route, RouteName) else str(route).lower()
        self._samples.append(MetricSample(
            route=name,
            latency_ms=latency_ms,
            success=success,
            query=query,
            confidence=confidence,
            model=model,
        ))
        logger.debug(f"Recorded: {name} ({latency_ms:.0f}ms) - {query[:50] or 'no query'}")

    @property
    def samples(self) -> list[MetricSample]:
        return list(self._samples)

    def __len__(self) -> int:
        return len(self._samples)

    def clear(self) -> None:
        self._samples.clear()

    def get_stats(self) -> MetricsStats:
        samples = list(self._samples)
        if not samples:
            return MetricsStats(route_percentages={r.value: 0.0 for r in RouteName})

        by_route: dict[str, list[MetricSample]] = {}
        for sample in samples:
            by_route.setdefault(sample.route, []).append(sample)

        breakdown = {}
        for route, group in by_route.items():
            latencies = [s.latency_ms for s in group]
            breakdown[route] = RouteStats(
                count=len(group),
                avg_latency_ms=_average(latencies),
                success_rate=sum(1 for s in group if s.success) / len(group) * 100,
                p95_latency_ms=percentile(latencies, 95),
            )

        total = len(samples)
        percentages = {r.value: len(by_route.get(r.value, ())) / total * 100 for r in RouteName}

        return MetricsStats(
            total=total,
            avg_latency_ms=_average([s.latency_ms for s in samples]),
            route_breakdown=breakdown,
            route_percentages=percentages,
        )
