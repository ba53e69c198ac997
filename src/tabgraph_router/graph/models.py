"""
Data models for the tab knowledge graph.

Nodes are stored in an id-indexed arena and edges in an adjacency map keyed by
node id; no model holds a direct reference to another node.
"""

from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def domain_from_url(url: str) -> str:
    """Lower-cased hostname of ``url`` with a leading ``www.`` removed ("" if unparsable)."""
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


class Tab(BaseModel):
    """Immutable snapshot of a browser tab.

    Attributes:
        id: Stable unique identifier for the tab
        title: The title of the tab
        url: The URL of the tab
        domain: Hostname derived from ``url`` (lower-cased, ``www.`` stripped)
        pinned: Whether the tab is pinned in the tab strip
    """

    id: str
    title: str = ""
    url: str = ""
    domain: str = ""
    pinned: bool = False

    model_config = ConfigDict(frozen=True)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        """Accept integer ids from callers that number their tabs."""
        return str(v)

    @model_validator(mode="before")
    @classmethod
    def derive_domain(cls, data: Any):
        """Fill ``domain`` from ``url`` when the caller did not supply one."""
        if isinstance(data, dict):
            domain = data.get("domain") or domain_from_url(data.get("url") or "")
            domain = domain.lower()
            if domain.startswith("www."):
                domain = domain[4:]
            data = {**data, "domain": domain}
        return data


class TabContext(str, Enum):
    """Coarse activity classification of a tab."""
    WORK = "work"
    RESEARCH = "research"
    SHOPPING = "shopping"
    SOCIAL = "social"
    ENTERTAINMENT = "entertainment"
    OTHER = "other"


class EdgeReason(str, Enum):
    """Why two nodes are connected."""
    SEMANTIC = "semantic"
    DOMAIN = "domain"
    TEMPORAL = "temporal"


class EventType(str, Enum):
    """Kinds of tab events recorded in the history log."""
    OPEN = "open"
    CLOSE = "close"
    SWITCH = "switch"
    GROUP = "group"


class EventMetadata(BaseModel):
    """Optional extra information attached to a tab event."""

    from_tab_id: Optional[str] = None
    group_id: Optional[str] = None


class TabEvent(BaseModel):
    """A single entry in the append-only tab event log.

    Attributes:
        type: Event kind (open, close, switch, group)
        tab_id: Tab the event refers to
        timestamp: Wall-clock time in milliseconds
        metadata: Optional source tab / group information
    """

    type: EventType
    tab_id: str
    timestamp: float
    metadata: Optional[EventMetadata] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("tab_id", mode="before")
    @classmethod
    def coerce_tab_id(cls, v):
        return str(v)


class GraphNode(BaseModel):
    """A tab as seen by the knowledge graph.

    Attributes:
        id: Tab id
        tab: The tab snapshot the node was built from
        embedding: Sparse TF-IDF vector (keyword -> weight), L2-normalized
        keywords: Deduplicated keywords extracted from the tab
        context: Activity classification of the tab
        visit_count: Number of open events for this tab in history
        last_visited: Timestamp (ms) of the most recent event for this tab
    """

    id: str
    tab: Tab
    embedding: dict[str, float] = Field(default_factory=dict)
    keywords: list[str] = Field(default_factory=list)
    context: TabContext = TabContext.OTHER
    visit_count: int = 0
    last_visited: float = 0.0


class GraphEdge(BaseModel):
    """A weighted relationship between two nodes.

    One edge exists per (source, target, reason); a pair may carry a semantic,
    a domain and a temporal edge at the same time.
    """

    source: str
    target: str
    weight: float = Field(ge=0.0, le=1.0)
    reason: EdgeReason
    confidence: float = Field(ge=0.0, le=1.0)
    co_occurrence_count: Optional[int] = None

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id

    def other(self, node_id: str) -> str:
        return self.target if self.source == node_id else self.source


class TemporalPattern(BaseModel):
    """A frequently repeated sequence of tab opens.

    Attributes:
        sequence: Ordered tab ids (length 2-5)
        frequency: Number of occurrences across sessions
        avg_time_gap: Average gap between consecutive opens (ms)
        confidence: min(1, frequency / 10)
        context: Inferred context label, e.g. "morning routine" or "work"
    """

    sequence: list[str]
    frequency: int
    avg_time_gap: float = 0.0
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    context: Optional[str] = None


class TabGroup(BaseModel):
    """A cluster of related tabs proposed by the graph."""

    label: str
    tabs: list[Tab]
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str

    @property
    def tab_ids(self) -> list[str]:
        return [tab.id for tab in self.tabs]


class WorkflowSuggestionType(str, Enum):
    NEXT_TABS = "next_tabs"
    WORKFLOW_RECOVERY = "workflow_recovery"
    SESSION_RESTORE = "session_restore"


class WorkflowSuggestion(BaseModel):
    """A workflow continuation or recovery proposal derived from mined patterns."""

    type: WorkflowSuggestionType
    message: str
    suggested_tabs: list[str]
    confidence: float = Field(ge=0.0, le=1.0)
    context: Optional[str] = None
    pattern: Optional[TemporalPattern] = None


class GraphStats(BaseModel):
    """Summary counters for a built graph."""

    node_count: int = 0
    edge_count: int = 0
    pattern_count: int = 0
    avg_degree: float = 0.0


class GraphSnapshot(BaseModel):
    """Plain-data export of a knowledge graph (JSON-serialisable)."""

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    temporal_patterns: list[TemporalPattern] = Field(default_factory=list)
    event_history: list[TabEvent] = Field(default_factory=list)
    document_frequencies: dict[str, int] = Field(default_factory=dict)
    total_documents: int = 0
