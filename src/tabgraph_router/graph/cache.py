"""
Copy-on-write cache of the most recently built knowledge graph.

A published graph is never mutated: rebuilds and incremental updates work on a
fresh or cloned graph and swap it in under the writer lock, so concurrent
readers always see a complete graph.
"""

import asyncio
from datetime import tzinfo
from functools import partial
from typing import Callable, NamedTuple, Optional, Sequence

from tabgraph_router.config import get_logger
from tabgraph_router.graph.event_log import HistoryFingerprint, history_fingerprint
from tabgraph_router.graph.knowledge_graph import TabKnowledgeGraph
from tabgraph_router.graph.models import Tab, TabEvent

logger = get_logger(__name__)


class CacheKey(NamedTuple):
    tab_ids: tuple[str, ...]
    history: HistoryFingerprint


class CacheEntry(NamedTuple):
    key: CacheKey
    graph: TabKnowledgeGraph


def make_cache_key(tab_ids, fingerprint: HistoryFingerprint) -> CacheKey:
    return CacheKey(tab_ids=tuple(sorted(set(tab_ids))), history=fingerprint)


class GraphCache:
    """
    Serves a built graph for a (tab-id set, history fingerprint) pair.

    Attributes:
        rebuild_count: Number of full rebuilds performed by this cache
    """

    def __init__(
        self,
        session_gap_ms: Optional[float] = None,
        max_history: int = 1000,
        tz: Optional[tzinfo] = None,
        graph_factory: Optional[Callable[[], TabKnowledgeGraph]] = None,
    ):
        if graph_factory is None:
            kwargs = {"max_history": max_history, "tz": tz}
            if session_gap_ms is not None:
                kwargs["session_gap_ms"] = session_gap_ms
            graph_factory = partial(TabKnowledgeGraph, **kwargs)
        self._graph_factory = graph_factory
        self._lock = asyncio.Lock()
        self._entry: Optional[CacheEntry] = None
        self.rebuild_count = 0

    @property
    def current(self) -> Optional[TabKnowledgeGraph]:
        """Most recently published graph, if any."""
        entry = self._entry
        return entry.graph if entry else None

    @property
    def key(self) -> Optional[CacheKey]:
        entry = self._entry
        return entry.key if entry else None

    def lookup(self, key: CacheKey) -> Optional[TabKnowledgeGraph]:
        entry = self._entry
        if entry is not None and entry.key == key:
            return entry.graph
        return None

    async def get_graph(
        self,
        tabs: Sequence[Tab],
        history: Sequence[TabEvent],
        fingerprint: Optional[HistoryFingerprint] = None,
    ) -> TabKnowledgeGraph:
        """
        Return a graph for ``tabs`` and ``history``, rebuilding only on a key change.

        Args:
            tabs: Current tab snapshot
            history: Event history the graph should reflect
            fingerprint: History fingerprint; derived from ``history`` if omitted

        Returns:
            A published (read-only) graph
        """
        if fingerprint is None:
            fingerprint = history_fingerprint(list(history))
        key = make_cache_key((t.id for t in tabs), fingerprint)

        cached = self.lookup(key)
        if cached is not None:
            logger.debug("Using cached knowledge graph (tabs and history unchanged)")
            return cached

        async with self._lock:
            # another writer may have built it while we waited
            cached = self.lookup(key)
            if cached is not None:
                return cached

            graph = self._graph_factory()
            await asyncio.to_thread(graph.build_graph, list(tabs), list(history))
            self._entry = CacheEntry(key, graph)
            self.rebuild_count += 1
            logger.info(f"Built and cached new knowledge graph (rebuild #{self.rebuild_count})")
            return graph

    async def apply_tab_change(self, tab: Tab, action: str) -> Optional[TabKnowledgeGraph]:
        """
        Apply an open/close/update incrementally to a clone of the cached graph.

        Returns:
            The newly published graph, or None when nothing is cached
        """
        async with self._lock:
            entry = self._entry
            if entry is None:
                return None
            graph = entry.graph.clone()
            graph.update_on_tab_change(tab, action)
            key = make_cache_key(graph.node_ids, entry.key.history)
            self._entry = CacheEntry(key, graph)
            return graph

    def invalidate(self) -> None:
        self._entry = None
