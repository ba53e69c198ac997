"""
Knowledge graph layer: tab/event models, similarity utilities, the temporal
pattern miner, the knowledge graph engine and its copy-on-write cache.
"""

from tabgraph_router.graph.models import (
    Tab,
    TabEvent,
    EventType,
    GraphNode,
    GraphEdge,
    EdgeReason,
    TabContext,
    TemporalPattern,
    TabGroup,
    WorkflowSuggestion,
    GraphSnapshot,
    GraphStats,
)
from tabgraph_router.graph.event_log import EventLog
from tabgraph_router.graph.temporal_miner import TemporalPatternMiner
from tabgraph_router.graph.knowledge_graph import TabKnowledgeGraph
from tabgraph_router.graph.cache import GraphCache

__all__ = [
    "Tab",
    "TabEvent",
    "EventType",
    "GraphNode",
    "GraphEdge",
    "EdgeReason",
    "TabContext",
    "TemporalPattern",
    "TabGroup",
    "WorkflowSuggestion",
    "GraphSnapshot",
    "GraphStats",
    "EventLog",
    "TemporalPatternMiner",
    "TabKnowledgeGraph",
    "GraphCache",
]
