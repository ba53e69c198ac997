"""
Tier 3: local reasoning model with knowledge-graph context.

The model is asked for either a direct action or a registered function call as
JSON. Output is parsed and validated into a ReasonerDecision; anything that
does not validate raises ModelOutputError so the router can escalate.
"""

import asyncio
import json
import re
import time
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from tabgraph_router.config import get_logger
from tabgraph_router.agents.function_registry import FunctionRegistry
from tabgraph_router.agents.model_adapter import ModelAdapter
from tabgraph_router.agents.models import FunctionCall, ModelOptions, ReasonerDecision
from tabgraph_router.errors import (
    FunctionArgumentError,
    ModelOutputError,
    TierTimeoutError,
    UnknownFunctionError,
)
from tabgraph_router.graph.cache import GraphCache
from tabgraph_router.graph.event_log import EventLog
from tabgraph_router.graph.models import Tab, TabGroup

logger = get_logger(__name__)

MAX_PROMPT_TABS = 20

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class RawModelDecision(BaseModel):
    """Shape of the JSON object the reasoning model is asked to produce."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    action: Optional[str] = None
    function: Optional[str] = None
    args: dict[str, Any] = Field(default_factory=dict)
    reasoning: str = ""
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    tab_ids: list[str] = Field(default_factory=list, alias="tabIds")
    group_name: Optional[str] = Field(default=None, alias="groupName")


def parse_model_output(text: str) -> RawModelDecision:
    """
    Carve the first JSON object out of model text and validate it.

    Raises:
        ModelOutputError: If no object is found or it does not validate
    """
    found = _JSON_OBJECT.search(text)
    if not found:
        raise ModelOutputError("No JSON found in response", raw_output=text)

    try:
        data = json.loads(found.group(0))
    except json.JSONDecodeError as e:
        raise ModelOutputError(f"Invalid JSON in response: {e}", raw_output=text) from e
    if not isinstance(data, dict):
        raise ModelOutputError("Response JSON is not an object", raw_output=text)

    # models sometimes emit numeric tab ids
    if isinstance(data.get("tabIds"), list):
        data["tabIds"] = [str(i) for i in data["tabIds"]]

    try:
        decision = RawModelDecision.model_validate(data)
    except ValidationError as e:
        raise ModelOutputError(f"Response failed validation: {e}", raw_output=text) from e

    if not decision.function and not decision.action:
        raise ModelOutputError("Response has neither an action nor a function", raw_output=text)
    return decision


def format_graph_context(groups: Sequence[TabGroup], node_count: int, edge_count: int, pattern_count: int) -> str:
    if not groups:
        return f"\n\nKnowledge Graph Analysis: No strong groupings detected ({node_count} tabs analyzed)"

    lines = [
        f'  {i}. "{g.label}" ({len(g.tabs)} tabs, confidence: {g.confidence * 100:.0f}%) - {g.reason}'
        for i, g in enumerate(groups, 1)
    ]
    return (
        "\n\nKnowledge Graph Analysis (semantic + temporal patterns):\n"
        f"- Found {len(groups)} potential tab groups:\n"
        + "\n".join(lines)
        + f"\n- Graph stats: {node_count} nodes, {edge_count} edges, {pattern_count} temporal patterns"
    )


class TabReasoner:
    """
    Reasoning tier over a local model adapter.

    Attributes:
        model: Reasoning model adapter
        graph_cache: Shared knowledge-graph cache
        event_log: Shared event history
        registry: Functions the model may call
    """

    def __init__(
        self,
        model: ModelAdapter,
        graph_cache: Optional[GraphCache] = None,
        event_log: Optional[EventLog] = None,
        registry: Optional[FunctionRegistry] = None,
        max_new_tokens: int = 200,
        timeout_s: Optional[float] = None,
    ):
        self.model = model
        self.graph_cache = graph_cache if graph_cache is not None else GraphCache()
        self.event_log = event_log if event_log is not None else EventLog()
        self.registry = registry if registry is not None else FunctionRegistry()
        self.options = ModelOptions(max_new_tokens=max_new_tokens, temperature=0.0)
        self.timeout_s = timeout_s

    @property
    def model_label(self) -> str:
        return self.model.label

    def is_ready(self) -> bool:
        return self.model.is_ready()

    async def graph_context(self, tabs: Sequence[Tab]) -> tuple[str, list[TabGroup]]:
        """Prompt text describing the graph's suggested groups, plus the groups."""
        try:
            graph = await self.graph_cache.get_graph(
                tabs,
                self.event_log.snapshot(),
                fingerprint=self.event_log.fingerprint(),
            )
            groups = graph.get_suggested_groups(2)
            stats = graph.get_stats()
        except Exception as e:
            logger.warning(f"Knowledge graph build failed, continuing without it: {e}")
            return "\n\nKnowledge Graph: Unavailable (using basic analysis)", []

        text = format_graph_context(groups, stats.node_count, stats.edge_count, stats.pattern_count)
        return text, groups

    def build_prompt(self, query: str, tabs: Sequence[Tab], graph_context: str = "") -> str:
        tab_lines = "\n".join(
            f"{i}. {t.title} ({t.domain})" for i, t in enumerate(tabs[:MAX_PROMPT_TABS], 1)
        )
        return f"""You are a browser tab management assistant with access to semantic and temporal analysis. Analyze this query and return a function call.

User query: "{query}"

Available tabs ({len(tabs)} total):
{tab_lines}{graph_context}

Available Functions:
{self.registry.definitions_prompt()}

Return JSON with either:
1. Direct action format:
{{
  "action": "close" | "group" | "find" | "suggest",
  "reasoning": "brief explanation (mention if you used graph insights)",
  "confidence": 0.0-1.0,
  "tabIds": ["tab-id-1", "tab-id-2"] (if applicable),
  "groupName": "Group Name" (if grouping)
}}

OR

2. Function call format (preferred):
{{
  "function": "functionName",
  "args": {{ "param1": "value1", "param2": "value2" }},
  "confidence": 0.0-1.0,
  "reasoning": "brief explanation"
}}

Be concise and accurate. Only return valid JSON. If the Knowledge Graph suggests groups, consider them in your reasoning. Prefer function calls when a matching function exists."""

    async def analyze(self, query: str, tabs: Sequence[Tab]) -> ReasonerDecision:
        """
        Ask the reasoning model what to do with ``query``.

        Args:
            query: Free-text command
            tabs: Current tab snapshot

        Returns:
            Validated decision

        Raises:
            ModelNotLoadedError: If the model is not loaded
            ModelInvocationError: If the model call fails
            ModelOutputError: If the output cannot be used
            TierTimeoutError: If the tier exceeds its timeout
        """
        if not self.timeout_s:
            return await self._analyze(query, tabs)
        try:
            return await asyncio.wait_for(self._analyze(query, tabs), timeout=self.timeout_s)
        except asyncio.TimeoutError as e:
            raise TierTimeoutError("reasoning", self.timeout_s) from e

    async def _analyze(self, query: str, tabs: Sequence[Tab]) -> ReasonerDecision:
        start = time.perf_counter()
        context, groups = await self.graph_context(tabs)
        prompt = self.build_prompt(query, tabs, context)

        output = await self.model.invoke(prompt, self.options)
        raw = parse_model_output(output)
        latency_ms = (time.perf_counter() - start) * 1000

        if raw.function:
            decision = self._execute_function(raw, tabs)
        else:
            decision = ReasonerDecision(
                action=raw.action,
                reasoning=raw.reasoning,
                confidence=raw.confidence if raw.confidence is not None else 0.8,
                tab_ids=raw.tab_ids,
                group_name=raw.group_name,
            )
            decision = self._enrich_with_graph(decision, groups)

        decision.latency_ms = latency_ms
        logger.info(f"Reasoning tier answered in {latency_ms:.0f}ms (action={decision.action})")
        return decision

    def _execute_function(self, raw: RawModelDecision, tabs: Sequence[Tab]) -> ReasonerDecision:
        call = FunctionCall(
            function=raw.function,
            args=raw.args,
            confidence=raw.confidence if raw.confidence is not None else 0.8,
        )
        try:
            result = self.registry.execute(call, tabs)
        except (UnknownFunctionError, FunctionArgumentError) as e:
            raise ModelOutputError(f"Unusable function call: {e}", raw_output=raw.model_dump_json()) from e

        logger.info(f"Function call executed: {call.function}")
        return ReasonerDecision(
            action=result.action,
            reasoning=raw.reasoning or f"Executed {call.function}",
            confidence=call.confidence,
            tab_ids=result.tab_ids,
            group_name=result.group_name,
            function=call.function,
            result=result,
        )

    @staticmethod
    def _enrich_with_graph(decision: ReasonerDecision, groups: Sequence[TabGroup]) -> ReasonerDecision:
        """Fill a missing group name from the graph group sharing a tab with the decision."""
        if decision.action != "group" or decision.group_name or not groups:
            return decision

        chosen = set(decision.tab_ids)
        for group in groups:
            if chosen & set(group.tab_ids):
                return decision.model_copy(update={
                    "group_name": group.label,
                    "reasoning": f"{decision.reasoning} (Graph suggests: {group.reason})",
                })
        return decision
