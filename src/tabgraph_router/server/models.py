"""
Pydantic models for API request/response validation.
"""

from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

from tabgraph_router.agents.models import GroupingSuggestion
from tabgraph_router.graph.models import EventMetadata, EventType, GraphStats, Tab, TabEvent, WorkflowSuggestion
from tabgraph_router.router.metrics import MetricsStats


# ============================================================================
# Request Models
# ============================================================================


class TabInput(BaseModel):
    """Input model for a browser tab from the host shell."""

    id: Union[str, int]
    url: str
    title: str = ""
    pinned: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v):
        return str(v)

    def to_tab(self) -> Tab:
        return Tab(id=self.id, url=self.url, title=self.title, pinned=self.pinned)


def to_tabs(inputs: list[TabInput]) -> list[Tab]:
    return [t.to_tab() for t in inputs]


class RouteRequest(BaseModel):
    """Request model for /api/route endpoint."""

    query: str
    tabs: list[TabInput] = Field(default_factory=list)
    active_tab_id: Optional[str] = None


class GroupSuggestRequest(BaseModel):
    """Request model for /api/groups/suggest endpoint."""

    seed_tab_ids: list[str]
    tabs: list[TabInput]
    exclude_tab_ids: list[str] = Field(default_factory=list)
    defer_naming: bool = True
    use_graph: bool = True


class MultipleGroupsRequest(BaseModel):
    """Request model for /api/groups/multiple endpoint."""

    tabs: list[TabInput]
    exclude_tab_ids: list[str] = Field(default_factory=list)
    use_graph: bool = True


class EventInput(BaseModel):
    """A single tab event (timestamp in epoch milliseconds)."""

    type: EventType
    tab_id: Union[str, int]
    timestamp: float
    from_tab_id: Optional[str] = None
    group_id: Optional[str] = None

    def to_event(self) -> TabEvent:
        metadata = None
        if self.from_tab_id is not None or self.group_id is not None:
            metadata = EventMetadata(from_tab_id=self.from_tab_id, group_id=self.group_id)
        return TabEvent(type=self.type, tab_id=self.tab_id, timestamp=self.timestamp, metadata=metadata)


class EventsRequest(BaseModel):
    """Request model for /api/events endpoint."""

    events: list[EventInput]


class WorkflowRequest(BaseModel):
    """Request model for /api/workflow/suggestions endpoint."""

    current_tab_ids: list[str]
    tabs: list[TabInput] = Field(default_factory=list)


# ============================================================================
# Response Models
# ============================================================================


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str
    version: str = "0.1.0"
    timestamp: str
    models: dict[str, str] = Field(default_factory=dict)


class GroupSuggestResponse(BaseModel):
    """Response model for /api/groups/suggest endpoint."""

    suggestion: GroupingSuggestion
    pending_names: int = 0


class MultipleGroupsResponse(BaseModel):
    """Response model for /api/groups/multiple endpoint."""

    groups: list[GroupingSuggestion] = Field(default_factory=list)
    total: int = 0


class EventsResponse(BaseModel):
    """Response model for /api/events endpoint."""

    status: str
    recorded: int
    history_size: int


class WorkflowResponse(BaseModel):
    """Response model for /api/workflow/suggestions endpoint."""

    suggestions: list[WorkflowSuggestion] = Field(default_factory=list)


class StatsResponse(BaseModel):
    """Response model for /api/stats endpoint."""

    metrics: MetricsStats
    graph: Optional[GraphStats] = None
    pattern_rules: int = 0
    event_history_size: int = 0
