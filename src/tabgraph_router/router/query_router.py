"""
Tiered query router.

Escalation per query, strictly in this order and without retries:

    direct_llm -> pattern -> compact -> (reasoning | remote for workspace and
    container) -> reasoning -> remote -> fallback

``route`` always returns a RoutingResult. Grouping, tab-action and
workspace/container queries always end in an actionable result, at worst a
forced hand-off to the remote tier.
"""

import asyncio
import time
from typing import Optional, Sequence

from tabgraph_router.config import Settings, get_logger, get_settings
from tabgraph_router.agents.device import DeviceCapabilityProbe, choose_reasoning_model
from tabgraph_router.agents.function_registry import FunctionRegistry
from tabgraph_router.agents.grouping_engine import TabGroupingEngine
from tabgraph_router.agents.model_adapter import OpenAICompatibleAdapter
from tabgraph_router.agents.models import DeviceCapabilities, GroupingSuggestion, ReasonerDecision
from tabgraph_router.agents.pattern_matcher import PatternMatcher
from tabgraph_router.agents.reasoner import TabReasoner
from tabgraph_router.graph.cache import GraphCache
from tabgraph_router.graph.event_log import EventLog
from tabgraph_router.graph.knowledge_graph import TabKnowledgeGraph
from tabgraph_router.graph.models import Tab, TabEvent
from tabgraph_router.graph.temporal_miner import MINUTE_MS
from tabgraph_router.router.classifier import QueryClassifier, QueryProfile
from tabgraph_router.router.metrics import MetricsStats, PerformanceMetrics
from tabgraph_router.router.models import RemoteAction, RouteName, RoutingResult

logger = get_logger(__name__)

PATTERN_LABEL = "Pattern Matching"
DIRECT_LLM_LABEL = "Direct LLM"
MAX_GROUPING_SEEDS = 3

REMOTE_COMPLEX_CONFIDENCE = 0.9
REMOTE_GUARANTEE_CONFIDENCE = 0.95
REMOTE_FALLBACK_CONFIDENCE = 0.7


def _site_matches(site: str, domain: str) -> bool:
    if site == "twitter" and domain == "x.com":
        return True
    return site in domain


class QueryRouter:
    """
    Routes free-text tab commands to the cheapest tier that can handle them.

    The event log and graph cache are shared by the grouping engine and the
    reasoner, so both tiers see the same history and reuse the same graph.

    Example:
        >>> router = await QueryRouter.create()
        >>> router.preload()
        >>> result = await router.route("close all my linkedin tabs", tabs)
        >>> result.route
        <RouteName.PATTERN: 'pattern'>
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        pattern_matcher: Optional[PatternMatcher] = None,
        grouping_engine: Optional[TabGroupingEngine] = None,
        reasoner: Optional[TabReasoner] = None,
        metrics: Optional[PerformanceMetrics] = None,
        classifier: Optional[QueryClassifier] = None,
        device_probe: Optional[DeviceCapabilityProbe] = None,
    ):
        """
        Initialize the router.

        Args:
            settings: Router settings. If not provided, loaded from config.
            pattern_matcher: Tier 1 rule table
            grouping_engine: Tier 2 engine; owns the shared event log and graph cache
            reasoner: Tier 3 reasoner, or None when no reasoning model is configured
            metrics: Metrics sink
            classifier: Query classifier
            device_probe: Hardware probe
        """
        self.settings = settings if settings is not None else get_settings()
        self.pattern_matcher = pattern_matcher if pattern_matcher is not None else PatternMatcher()
        if grouping_engine is None:
            grouping_engine = TabGroupingEngine(
                graph_cache=GraphCache(
                    session_gap_ms=self.settings.session_gap_minutes * MINUTE_MS,
                    max_history=self.settings.max_event_history,
                ),
                event_log=EventLog(max_events=self.settings.max_event_history),
            )
        self.grouping_engine = grouping_engine
        self.reasoner = reasoner
        self.metrics = metrics if metrics is not None else PerformanceMetrics()
        self.classifier = classifier if classifier is not None else QueryClassifier()
        self.device_probe = device_probe if device_probe is not None else DeviceCapabilityProbe()

    @classmethod
    async def create(
        cls,
        settings: Optional[Settings] = None,
        device_probe: Optional[DeviceCapabilityProbe] = None,
    ) -> "QueryRouter":
        """
        Build a router with model tiers served from the configured endpoint.

        The reasoning model is chosen from the device probe: the accelerated
        model on capable hardware, the CPU model otherwise.
        """
        settings = settings if settings is not None else get_settings()
        device_probe = device_probe if device_probe is not None else DeviceCapabilityProbe()
        capabilities = await device_probe.detect()

        event_log = EventLog(max_events=settings.max_event_history)
        graph_cache = GraphCache(
            session_gap_ms=settings.session_gap_minutes * MINUTE_MS,
            max_history=settings.max_event_history,
        )
        grouping_engine = TabGroupingEngine(
            graph_cache=graph_cache,
            event_log=event_log,
            naming_model=OpenAICompatibleAdapter.from_settings(settings, settings.compact_model),
            naming_max_tokens=settings.compact_max_tokens,
            naming_timeout_s=settings.compact_tier_timeout_s,
        )
        reasoner = TabReasoner(
            model=OpenAICompatibleAdapter.from_settings(
                settings, choose_reasoning_model(settings, capabilities)
            ),
            graph_cache=graph_cache,
            event_log=event_log,
            registry=FunctionRegistry(),
            max_new_tokens=settings.reasoning_max_tokens,
            timeout_s=settings.reasoning_tier_timeout_s,
        )
        return cls(
            settings=settings,
            grouping_engine=grouping_engine,
            reasoner=reasoner,
            device_probe=device_probe,
        )

    def preload(self) -> list[asyncio.Task]:
        """Start loading the model tiers in the background (requires a running loop)."""
        tasks = []
        if self.grouping_engine.naming_model is not None:
            tasks.append(self.grouping_engine.naming_model.preload())
        if self.reasoner is not None:
            tasks.append(self.reasoner.model.preload())
        return tasks

    # ---- routing ----

    async def route(
        self,
        query: str,
        tabs: Sequence[Tab],
        active_tab_id: Optional[str] = None,
    ) -> RoutingResult:
        """
        Route one query through the tiers.

        Args:
            query: Free-text command
            tabs: Current tab snapshot
            active_tab_id: Currently focused tab, if any

        Returns:
            The routing result; never raises for any query
        """
        start = time.perf_counter()
        try:
            return await self._route(query, tabs, active_tab_id, start)
        except Exception:
            logger.error(f"Routing failed unexpectedly for query: {query[:80]}", exc_info=True)
            return self._remote(
                start, query, REMOTE_FALLBACK_CONFIDENCE,
                "Routing failed unexpectedly - routing to remote tier for best-effort execution",
                force_execution=True,
            )

    async def _route(
        self,
        query: str,
        tabs: Sequence[Tab],
        active_tab_id: Optional[str],
        start: float,
    ) -> RoutingResult:
        profile = self.classifier.classify(query)
        logger.debug(f"Query profile for '{query[:50]}': {profile}")

        if profile.conversational:
            return self._finish(
                start, query, RouteName.DIRECT_LLM,
                RemoteAction(query=query, is_conversational=True),
                confidence=1.0,
                model=DIRECT_LLM_LABEL,
                reasoning="Conversational query - routing directly to remote LLM",
            )

        match = self.pattern_matcher.match(query, tabs, active_tab_id=active_tab_id)
        if match is not None:
            return self._finish(
                start, query, RouteName.PATTERN, match.result,
                confidence=match.confidence,
                model=PATTERN_LABEL,
                reasoning=f"Matched pattern: {match.name}",
            )

        if profile.grouping and profile.simple_grouping:
            suggestion = await self._try_compact(profile, tabs)
            if suggestion is not None:
                return self._finish(
                    start, query, RouteName.COMPACT, suggestion,
                    confidence=suggestion.confidence,
                    model=self._compact_label,
                    reasoning="Simple grouping query handled by the compact tier with the knowledge graph",
                )

        reasoning_attempted = False

        if profile.workspace_or_container:
            if self._reasoning_ready():
                reasoning_attempted = True
                decision = await self._try_reasoning(query, tabs)
                if decision is not None:
                    return self._reasoning_result(
                        start, query, decision,
                        decision.reasoning or "Workspace/container operation handled by the reasoning tier",
                    )
            if profile.needs_remote:
                return self._remote(
                    start, query, REMOTE_COMPLEX_CONFIDENCE,
                    "Workspace/container operation escalated to the remote tier",
                    message="Workspace/container operation requires the remote tier",
                )

        if not reasoning_attempted and self._reasoning_ready():
            reasoning_attempted = True
            decision = await self._try_reasoning(query, tabs)
            if decision is not None:
                reasoning = decision.reasoning
                if profile.grouping and not profile.simple_grouping:
                    reasoning = "Complex grouping query handled by the reasoning tier with the knowledge graph"
                return self._reasoning_result(start, query, decision, reasoning)

        if profile.complex and profile.needs_remote:
            return self._remote(
                start, query, REMOTE_COMPLEX_CONFIDENCE,
                "Complex query escalated to the remote tier",
                message="Complex query requires the remote tier",
            )

        if profile.grouping:
            logger.info("Grouping query - routing to remote tier for guaranteed execution")
            return self._remote(
                start, query, REMOTE_GUARANTEE_CONFIDENCE,
                "Grouping query - routing to remote tier for guaranteed execution",
                force_execution=True,
                is_grouping_query=True,
            )

        if profile.tab_action:
            logger.info("Tab action query - routing to remote tier for guaranteed execution")
            return self._remote(
                start, query, REMOTE_GUARANTEE_CONFIDENCE,
                "Tab action query (open/close/pin) - routing to remote tier for guaranteed execution",
                force_execution=True,
                is_tab_action=True,
            )

        logger.warning(f"Query fell through to fallback: {query[:80]}")
        return self._remote(
            start, query, REMOTE_FALLBACK_CONFIDENCE,
            "Query did not match any patterns - routing to remote tier for best-effort execution",
            force_execution=True,
        )

    # ---- tiers ----

    def grouping_seeds(self, profile: QueryProfile, tabs: Sequence[Tab]) -> list[str]:
        """Tabs of the named site, or the first few tabs when none match."""
        if profile.grouping_site:
            seeds = [t.id for t in tabs if _site_matches(profile.grouping_site, t.domain)]
            if seeds:
                return seeds[:MAX_GROUPING_SEEDS]
        return [t.id for t in tabs[:MAX_GROUPING_SEEDS]]

    async def _try_compact(self, profile: QueryProfile, tabs: Sequence[Tab]) -> Optional[GroupingSuggestion]:
        try:
            suggestion = await asyncio.wait_for(
                self.grouping_engine.suggest_tab_grouping(
                    self.grouping_seeds(profile, tabs),
                    tabs,
                    defer_naming=True,
                    use_graph=True,
                ),
                timeout=self.settings.compact_tier_timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("Compact tier timed out, escalating")
            return None
        except Exception as e:
            logger.warning(f"Compact tier failed, escalating: {e}")
            return None

        if not suggestion.is_actionable:
            logger.info("Compact tier found fewer than 2 related tabs, escalating")
            return None
        return suggestion

    def _reasoning_ready(self) -> bool:
        return self.reasoner is not None and self.reasoner.is_ready()

    async def _try_reasoning(self, query: str, tabs: Sequence[Tab]) -> Optional[ReasonerDecision]:
        try:
            return await self.reasoner.analyze(query, tabs)
        except Exception as e:
            logger.warning(f"Reasoning tier failed, escalating: {e}")
            return None

    def _reasoning_result(
        self,
        start: float,
        query: str,
        decision: ReasonerDecision,
        reasoning: Optional[str],
    ) -> RoutingResult:
        return self._finish(
            start, query, RouteName.REASONING, decision,
            confidence=decision.confidence,
            model=self.reasoner.model_label,
            reasoning=reasoning,
        )

    @property
    def _compact_label(self) -> str:
        model = self.grouping_engine.naming_model
        name = model.label if model is not None else "heuristic"
        return f"{name} + Knowledge Graph"

    # ---- terminal results ----

    def _remote(
        self,
        start: float,
        query: str,
        confidence: float,
        reasoning: str,
        message: Optional[str] = None,
        force_execution: bool = False,
        is_grouping_query: bool = False,
        is_tab_action: bool = False,
    ) -> RoutingResult:
        if not self.settings.remote_tier_enabled:
            logger.warning("Remote tier disabled; no tier could handle the query")
            return self._finish(
                start, query, RouteName.FALLBACK,
                RemoteAction(
                    should_use_remote=False,
                    query=query,
                    is_grouping_query=is_grouping_query,
                    is_tab_action=is_tab_action,
                    error="No tier could handle this query and the remote tier is disabled",
                ),
                confidence=0.0,
                success=False,
                reasoning=reasoning,
            )

        return self._finish(
            start, query, RouteName.REMOTE,
            RemoteAction(
                query=query,
                force_execution=force_execution,
                is_grouping_query=is_grouping_query,
                is_tab_action=is_tab_action,
                message=message,
            ),
            confidence=confidence,
            model=self.settings.remote_model_label,
            reasoning=reasoning,
        )

    def _finish(
        self,
        start: float,
        query: str,
        route: RouteName,
        action,
        confidence: float,
        model: Optional[str] = None,
        reasoning: Optional[str] = None,
        success: bool = True,
    ) -> RoutingResult:
        latency_ms = (time.perf_counter() - start) * 1000
        self.metrics.record(route, latency_ms, success, query, confidence, model)
        logger.info(f"Routed via {route.value} in {latency_ms:.1f}ms (confidence={confidence:.2f})")
        return RoutingResult(
            action=action,
            route=route,
            latency_ms=latency_ms,
            confidence=confidence,
            success=success,
            model=model,
            reasoning=reasoning,
        )

    # ---- shared state and introspection ----

    @property
    def event_log(self) -> EventLog:
        return self.grouping_engine.event_log

    @property
    def graph_cache(self) -> GraphCache:
        return self.grouping_engine.graph_cache

    def record_event(self, event: TabEvent) -> None:
        """Append a tab event to the history shared by every tier."""
        self.grouping_engine.record_event(event)

    async def update_tab(self, tab: Tab, action: str) -> Optional[TabKnowledgeGraph]:
        """Apply an open/close/update to the cached graph without a full rebuild."""
        return await self.graph_cache.apply_tab_change(tab, action)

    def get_metrics(self) -> MetricsStats:
        return self.metrics.get_stats()

    @property
    def pattern_count(self) -> int:
        return self.pattern_matcher.rule_count

    async def get_device_capabilities(self) -> DeviceCapabilities:
        return await self.device_probe.detect()
