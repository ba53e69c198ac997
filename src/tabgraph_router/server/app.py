"""
FastAPI application for the tab query router.

This server provides endpoints for:
- Query routing through the tiers
- Grouping suggestions (single and multiple groups)
- Event recording and workflow suggestions
- Routing metrics and graph statistics
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from tabgraph_router import __version__
from tabgraph_router.config import get_logger, get_settings
from tabgraph_router.router.models import RoutingResult
from tabgraph_router.router.query_router import QueryRouter
from tabgraph_router.server.models import (
    EventsRequest,
    EventsResponse,
    GroupSuggestRequest,
    GroupSuggestResponse,
    HealthResponse,
    MultipleGroupsRequest,
    MultipleGroupsResponse,
    RouteRequest,
    StatsResponse,
    WorkflowRequest,
    WorkflowResponse,
    to_tabs,
)

logger = get_logger(__name__)


def get_router(request: Request) -> QueryRouter:
    """Router stored on the application state."""
    router = getattr(request.app.state, "router", None)
    if router is None:
        raise HTTPException(status_code=503, detail="Router is not initialised")
    return router


def create_app(router: Optional[QueryRouter] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        router: Router to serve. If not provided, one is created from settings
            at startup and its models are preloaded in the background.

    Returns:
        The FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "router", None) is None:
            app.state.router = await QueryRouter.create(get_settings())
            app.state.router.preload()
            logger.info("Query router created and model preload started")
        yield

    app = FastAPI(
        title="TabGraph Router API",
        description="Tiered query routing for browser-tab commands with a tab knowledge graph",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.router = router

    # CORS middleware for the browser shell
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "chrome-extension://*",
            "http://localhost:*",
            "https://localhost:*",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # API Endpoints
    # ========================================================================

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint with model-tier states."""
        models = {}
        current = getattr(request.app.state, "router", None)
        if current is not None:
            naming = current.grouping_engine.naming_model
            if naming is not None:
                models["compact"] = naming.state.value
            if current.reasoner is not None:
                models["reasoning"] = current.reasoner.model.state.value
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=datetime.now(timezone.utc).isoformat(),
            models=models,
        )

    @app.post("/api/route", response_model=RoutingResult)
    async def route_query(body: RouteRequest, request: Request):
        """
        Route a free-text command through the tiers.

        Always returns a routing result; the route label and confidence show
        which tier handled the query.
        """
        router = get_router(request)
        return await router.route(body.query, to_tabs(body.tabs), active_tab_id=body.active_tab_id)

    @app.post("/api/groups/suggest", response_model=GroupSuggestResponse)
    async def suggest_group(body: GroupSuggestRequest, request: Request):
        """Suggest a group grown from the seed tabs."""
        engine = get_router(request).grouping_engine
        try:
            suggestion = await engine.suggest_tab_grouping(
                body.seed_tab_ids,
                to_tabs(body.tabs),
                exclude_ids=body.exclude_tab_ids,
                defer_naming=body.defer_naming,
                use_graph=body.use_graph,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return GroupSuggestResponse(suggestion=suggestion, pending_names=engine.pending_name_count)

    @app.post("/api/groups/multiple", response_model=MultipleGroupsResponse)
    async def suggest_multiple_groups(body: MultipleGroupsRequest, request: Request):
        """Suggest groups covering all ungrouped tabs."""
        engine = get_router(request).grouping_engine
        groups = await engine.suggest_multiple_groups(
            to_tabs(body.tabs),
            exclude_ids=body.exclude_tab_ids,
            use_graph=body.use_graph,
        )
        logger.info(f"Suggested {len(groups)} groups for {len(body.tabs)} tabs")
        return MultipleGroupsResponse(groups=groups, total=len(groups))

    @app.post("/api/events", response_model=EventsResponse)
    async def record_events(body: EventsRequest, request: Request):
        """Append tab events to the shared history."""
        router = get_router(request)
        for event in body.events:
            router.record_event(event.to_event())
        return EventsResponse(
            status="success",
            recorded=len(body.events),
            history_size=len(router.event_log),
        )

    @app.post("/api/workflow/suggestions", response_model=WorkflowResponse)
    async def workflow_suggestions(body: WorkflowRequest, request: Request):
        """Suggest workflow continuations from mined temporal patterns."""
        engine = get_router(request).grouping_engine
        tabs = to_tabs(body.tabs)
        suggestions = engine.get_workflow_suggestions(
            body.current_tab_ids,
            [t.id for t in tabs],
            tab_names={t.id: t.title for t in tabs if t.title},
        )
        return WorkflowResponse(suggestions=suggestions)

    @app.get("/api/stats", response_model=StatsResponse)
    async def get_stats(request: Request):
        """Routing metrics plus statistics of the cached graph."""
        router = get_router(request)
        return StatsResponse(
            metrics=router.get_metrics(),
            graph=router.grouping_engine.get_knowledge_graph_stats(),
            pattern_rules=router.pattern_count,
            event_history_size=len(router.event_log),
        )

    return app
