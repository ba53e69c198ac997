"""
Data models for routing results.
"""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from tabgraph_router.agents.models import GroupingSuggestion, ReasonerDecision, TabAction


class RouteName(str, Enum):
    """Tier that produced a routing result."""

    PATTERN = "pattern"
    COMPACT = "compact"
    REASONING = "reasoning"
    REMOTE = "remote"
    DIRECT_LLM = "direct_llm"
    FALLBACK = "fallback"


class RemoteAction(BaseModel):
    """Hand-off to the remote tier; the actual remote call happens outside the router.

    Attributes:
        should_use_remote: The caller should send the query to the remote tier
        force_execution: The remote tier must execute, not just answer (guarantee classes)
        query: Original query
        is_conversational: Query needs conversation context rather than tab analysis
        is_grouping_query: Query is a grouping request
        is_tab_action: Query is an open/close/pin request
        message: Human-readable explanation
        error: Set when no tier, remote included, can handle the query
    """

    should_use_remote: bool = True
    force_execution: bool = False
    query: str
    is_conversational: bool = False
    is_grouping_query: bool = False
    is_tab_action: bool = False
    message: Optional[str] = None
    error: Optional[str] = None


RouteAction = Union[TabAction, GroupingSuggestion, ReasonerDecision, RemoteAction]


class RoutingResult(BaseModel):
    """Outcome of routing one query. Every query produces exactly one."""

    action: RouteAction
    route: RouteName
    latency_ms: float = 0.0
    confidence: float = Field(ge=0.0, le=1.0)
    success: bool = True
    model: Optional[str] = None
    reasoning: Optional[str] = None
