"""
Data models produced by the tier agents.

These describe actions; nothing here mutates tabs. The host shell executes
the described action.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class TabAction(BaseModel):
    """A described tab operation (close, pin, open, find, focus, group, ...).

    Attributes:
        action: Operation name
        tab_ids: Tabs the operation applies to
        count: Number of tabs affected (or opened)
        url: URL to open, for open actions
        urls: URLs to open, for multi-open actions
        hide_tab_ids: Tabs to hide, for focus actions
        hidden_count: Number of hidden tabs, for focus actions
        group_name: Group name, for group actions
        color: Optional group color
        suggestions: Group proposals, for suggest actions
        message: Human-readable summary
    """

    action: str
    tab_ids: list[str] = Field(default_factory=list)
    count: int = 0
    url: Optional[str] = None
    urls: list[str] = Field(default_factory=list)
    hide_tab_ids: list[str] = Field(default_factory=list)
    hidden_count: int = 0
    group_name: Optional[str] = None
    color: Optional[str] = None
    suggestions: list["GroupingSuggestion"] = Field(default_factory=list)
    message: Optional[str] = None


class PatternMatch(BaseModel):
    """Result of a deterministic rule match."""

    name: str
    params: dict[str, str] = Field(default_factory=dict)
    confidence: float = Field(default=0.95, ge=0.0, le=1.0)
    result: TabAction
    latency_ms: float = 0.0


class GroupingSuggestion(BaseModel):
    """A proposed tab group. Callers create a group only when it has 2+ tabs."""

    group_name: str
    tab_ids: list[str] = Field(default_factory=list)
    confidence: float = Field(ge=0.0, le=1.0)
    reason: Optional[str] = None

    @property
    def is_actionable(self) -> bool:
        return len(self.tab_ids) >= 2


TabAction.model_rebuild()


class FunctionCall(BaseModel):
    """A named function invocation requested by a model tier."""

    function: str
    args: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class ModelOptions(BaseModel):
    """Decoding options passed to a model adapter (greedy by default)."""

    max_new_tokens: int = Field(default=200, gt=0)
    temperature: float = Field(default=0.0, ge=0.0)


class ReasonerDecision(BaseModel):
    """Validated output of the reasoning tier.

    Attributes:
        action: close | group | find | suggest, or the executed function's action
        reasoning: Short explanation from the model
        confidence: Model-reported confidence
        tab_ids: Tabs the decision refers to
        group_name: Group name for group decisions
        function: Name of the executed function, for function-call decisions
        result: Function execution result, for function-call decisions
        latency_ms: Time spent in the tier
    """

    action: str
    reasoning: str = ""
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    tab_ids: list[str] = Field(default_factory=list)
    group_name: Optional[str] = None
    function: Optional[str] = None
    result: Optional[TabAction] = None
    latency_ms: float = 0.0


class DeviceTier(str, Enum):
    BUDGET = "budget"
    POWER = "power"
    ENTERPRISE = "enterprise"


class DeviceCapabilities(BaseModel):
    """Hardware summary used to choose accelerated or conservative inference."""

    has_acceleration: bool = False
    system_memory_mb: float = 0.0
    estimated_accelerator_memory_gb: float = 0.0
    tier: DeviceTier = DeviceTier.BUDGET
