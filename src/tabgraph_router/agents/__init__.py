"""
Tier agents used by the query router.

This package provides:
- Deterministic pattern matching (PatternMatcher, Tier 1)
- Grouping suggestions over the knowledge graph (TabGroupingEngine, Tier 2)
- Graph-informed local reasoning (TabReasoner, Tier 3)
- The function registry, model adapters and device probe they depend on
"""

from tabgraph_router.agents.models import (
    TabAction,
    PatternMatch,
    GroupingSuggestion,
    FunctionCall,
    ModelOptions,
    ReasonerDecision,
    DeviceTier,
    DeviceCapabilities,
)
from tabgraph_router.agents.pattern_matcher import PatternMatcher
from tabgraph_router.agents.function_registry import FunctionRegistry
from tabgraph_router.agents.model_adapter import ModelAdapter, ModelState, OpenAICompatibleAdapter
from tabgraph_router.agents.device import DeviceCapabilityProbe
from tabgraph_router.agents.grouping_engine import TabGroupingEngine
from tabgraph_router.agents.reasoner import TabReasoner

__all__ = [
    "TabAction",
    "PatternMatch",
    "GroupingSuggestion",
    "FunctionCall",
    "ModelOptions",
    "ReasonerDecision",
    "DeviceTier",
    "DeviceCapabilities",
    "PatternMatcher",
    "FunctionRegistry",
    "ModelAdapter",
    "ModelState",
    "OpenAICompatibleAdapter",
    "DeviceCapabilityProbe",
    "TabGroupingEngine",
    "TabReasoner",
]
