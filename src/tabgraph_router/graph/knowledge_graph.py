"""
Tab knowledge graph: semantic, domain and temporal relationships between tabs.

Nodes live in an id-indexed arena; edges are stored once per
(source, target, reason) and indexed by node id in an adjacency map. Direction
is canonical (the node inserted first is the source), so traversal is always
undirected.
"""

import copy
import math
import time
from collections import Counter, deque
from datetime import tzinfo
from itertools import combinations
from typing import Iterable, Optional, Sequence

from tabgraph_router.config import get_logger
from tabgraph_router.graph.models import (
    EdgeReason,
    EventType,
    GraphEdge,
    GraphNode,
    GraphSnapshot,
    GraphStats,
    Tab,
    TabContext,
    TabEvent,
    TabGroup,
    TemporalPattern,
)
from tabgraph_router.graph.similarity import (
    extract_keywords,
    keyword_overlap,
    sparse_cosine_similarity,
    tfidf_vector,
)
from tabgraph_router.graph.temporal_miner import (
    MINUTE_MS,
    TemporalPatternMiner,
    group_into_sessions,
)

logger = get_logger(__name__)

EdgeKey = tuple[str, str, EdgeReason]

SEMANTIC_EDGE_THRESHOLD = 0.3
CLUSTER_EDGE_THRESHOLD = 0.4
DOMAIN_EDGE_WEIGHT = 0.8
DOMAIN_EDGE_CONFIDENCE = 0.95
TEMPORAL_EDGE_WEIGHT = 0.5
TEMPORAL_EDGE_INCREMENT = 0.1
TEMPORAL_EDGE_CONFIDENCE = 0.7
DEFAULT_SESSION_GAP_MS = 30 * MINUTE_MS
DEFAULT_MAX_HISTORY = 1000

_CONTEXT_RULES: list[tuple[TabContext, tuple[str, ...], tuple[str, ...]]] = [
    (TabContext.WORK, ("linkedin", "github", "stackoverflow", "jira", "slack"), ("work", "project")),
    (TabContext.RESEARCH, ("wikipedia", "arxiv", "scholar", "research"), ("research", "paper", "study")),
    (TabContext.SHOPPING, ("amazon", "ebay", "shop", "cart"), ("buy", "cart")),
    (TabContext.SOCIAL, ("facebook", "twitter", "instagram", "reddit"), ()),
    (TabContext.ENTERTAINMENT, ("youtube", "netflix", "spotify", "twitch"), ()),
]


def classify_context(tab: Tab) -> TabContext:
    """Classify a tab by domain and title keywords; first matching rule wins."""
    domain = tab.domain.lower()
    title = tab.title.lower()
    for context, domain_markers, title_markers in _CONTEXT_RULES:
        if any(m in domain for m in domain_markers) or any(m in title for m in title_markers):
            return context
    return TabContext.OTHER


class TabKnowledgeGraph:
    """
    Builds and maintains the relationship graph over the current tab set.

    Lifecycle: empty -> built (``build_graph``) -> kept live with ``add_node`` /
    ``remove_node`` / ``add_event``. Incremental updates produce the same edge
    set as a full rebuild over the resulting tabs and history.

    Attributes:
        session_gap_ms: Gap that splits history into sessions
        max_history: Number of most recent events retained
        temporal_patterns: Patterns mined from the retained history
        build_count: Number of full rebuilds performed
    """

    def __init__(
        self,
        session_gap_ms: float = DEFAULT_SESSION_GAP_MS,
        max_history: int = DEFAULT_MAX_HISTORY,
        tz: Optional[tzinfo] = None,
    ):
        self.session_gap_ms = session_gap_ms
        self.max_history = max_history
        self._miner = TemporalPatternMiner(tz=tz)

        self._nodes: dict[str, GraphNode] = {}
        self._position: dict[str, int] = {}
        self._next_position = 0
        self._edges: dict[EdgeKey, GraphEdge] = {}
        self._adjacency: dict[str, set[EdgeKey]] = {}

        self._document_frequencies: dict[str, int] = {}
        self._total_documents = 0
        self._keyword_index: dict[str, set[str]] = {}

        self._event_history: list[TabEvent] = []
        self._co_occurrence: dict[frozenset, int] = {}
        self.temporal_patterns: list[TemporalPattern] = []
        self.build_count = 0

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def node_ids(self) -> list[str]:
        return list(self._nodes)

    @property
    def nodes(self) -> list[GraphNode]:
        return list(self._nodes.values())

    @property
    def edges(self) -> list[GraphEdge]:
        return list(self._edges.values())

    @property
    def event_history(self) -> list[TabEvent]:
        return list(self._event_history)

    @property
    def total_documents(self) -> int:
        return self._total_documents

    @property
    def document_frequencies(self) -> dict[str, int]:
        return dict(self._document_frequencies)

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        return self._nodes.get(node_id)

    def edges_for(self, node_id: str) -> list[GraphEdge]:
        """All edges touching ``node_id`` (either direction)."""
        return [self._edges[key] for key in self._adjacency.get(node_id, ())]

    def clone(self) -> "TabKnowledgeGraph":
        """Independent deep copy, used for copy-on-write updates."""
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Full build
    # ------------------------------------------------------------------

    def build_graph(self, tabs: Iterable[Tab], history: Sequence[TabEvent] = ()) -> None:
        """
        Rebuild the graph from scratch.

        Args:
            tabs: Current tab snapshot (duplicate ids keep the first tab)
            history: Event history; only the most recent ``max_history`` are kept
        """
        unique: dict[str, Tab] = {}
        for tab in tabs:
            unique.setdefault(tab.id, tab)

        self._reset()
        self._event_history = list(history)[-self.max_history:]

        keyword_lists = {tab_id: extract_keywords(tab) for tab_id, tab in unique.items()}
        for tab_id, keywords in keyword_lists.items():
            self._index_keywords(tab_id, keywords)
        self._total_documents = len(unique)

        for tab_id, tab in unique.items():
            self._insert_node(tab, keyword_lists[tab_id])

        # all-pairs semantic and domain edges
        for a, b in combinations(list(self._nodes.values()), 2):
            self._score_semantic_pair(a, b)
            self._link_domain_pair(a, b)

        self._recompute_co_occurrence()
        for pair in self._co_occurrence:
            self._link_temporal_pair(pair)
        self._mine_patterns()

        self.build_count += 1
        logger.info(
            f"Built knowledge graph: {len(self._nodes)} nodes, "
            f"{len(self._edges)} edges, {len(self.temporal_patterns)} patterns"
        )

    def _reset(self) -> None:
        self._nodes.clear()
        self._position.clear()
        self._next_position = 0
        self._edges.clear()
        self._adjacency.clear()
        self._document_frequencies.clear()
        self._total_documents = 0
        self._keyword_index.clear()
        self._co_occurrence.clear()
        self.temporal_patterns = []

    # ------------------------------------------------------------------
    # Incremental updates
    # ------------------------------------------------------------------

    def add_node(self, tab: Tab) -> None:
        """
        Add (or replace) a single tab without a full rebuild.

        Document frequencies change for every node, so all embeddings and the
        semantic scores of every keyword-sharing pair are recomputed: O(n) plus
        up to O(n^2) pair rescoring. The result equals a full rebuild.
        """
        if tab.id in self._nodes:
            self.remove_node(tab.id)

        keywords = extract_keywords(tab)
        self._index_keywords(tab.id, keywords)
        self._total_documents += 1
        node = self._insert_node(tab, keywords)

        self._refresh_embeddings()
        self._rescore_semantic_edges()

        for other in self._nodes.values():
            if other.id != node.id:
                self._link_domain_pair(other, node)
        for pair in self._co_occurrence:
            if tab.id in pair:
                self._link_temporal_pair(pair)
        self._refresh_pattern_contexts()

    def remove_node(self, tab_id: str) -> bool:
        """
        Remove a tab and every edge touching it.

        Costs the same as ``add_node`` since remaining embeddings are recomputed.

        Returns:
            True if the node existed
        """
        node = self._nodes.pop(tab_id, None)
        if node is None:
            return False

        self._position.pop(tab_id, None)
        for keyword in node.keywords:
            count = self._document_frequencies.get(keyword, 0)
            if count > 1:
                self._document_frequencies[keyword] = count - 1
            else:
                self._document_frequencies.pop(keyword, None)
            holders = self._keyword_index.get(keyword)
            if holders is not None:
                holders.discard(tab_id)
                if not holders:
                    del self._keyword_index[keyword]
        self._total_documents -= 1

        for key in list(self._adjacency.get(tab_id, ())):
            self._drop_edge(key)
        self._adjacency.pop(tab_id, None)

        self._refresh_embeddings()
        self._rescore_semantic_edges()
        self._refresh_pattern_contexts()
        return True

    def update_on_tab_change(self, tab: Tab, action: str) -> None:
        """
        Apply a tab lifecycle change incrementally.

        Args:
            tab: The tab that changed
            action: "open", "close" or "update"
        """
        if action == "open":
            self.add_node(tab)
        elif action == "close":
            self.remove_node(tab.id)
        elif action == "update":
            self.remove_node(tab.id)
            self.add_node(tab)
        else:
            raise ValueError(f"Unknown tab change action: {action}")

    def add_event(self, event: TabEvent) -> None:
        """Append an event to history and refresh temporal edges and patterns."""
        self._event_history.append(event)
        if len(self._event_history) > self.max_history:
            self._event_history = self._event_history[-self.max_history:]

        for key in [k for k in self._edges if k[2] == EdgeReason.TEMPORAL]:
            self._drop_edge(key)
        self._recompute_co_occurrence()
        for pair in self._co_occurrence:
            self._link_temporal_pair(pair)
        self._mine_patterns()

    # ------------------------------------------------------------------
    # Node / edge helpers
    # ------------------------------------------------------------------

    def _index_keywords(self, tab_id: str, keywords: list[str]) -> None:
        for keyword in keywords:
            self._document_frequencies[keyword] = self._document_frequencies.get(keyword, 0) + 1
            self._keyword_index.setdefault(keyword, set()).add(tab_id)

    def _insert_node(self, tab: Tab, keywords: list[str]) -> GraphNode:
        tab_events = [e for e in self._event_history if e.tab_id == tab.id]
        node = GraphNode(
            id=tab.id,
            tab=tab,
            embedding=tfidf_vector(keywords, self._total_documents, self._document_frequencies),
            keywords=keywords,
            context=classify_context(tab),
            visit_count=sum(1 for e in tab_events if e.type == EventType.OPEN),
            last_visited=max((e.timestamp for e in tab_events), default=time.time() * 1000),
        )
        self._nodes[tab.id] = node
        self._position[tab.id] = self._next_position
        self._next_position += 1
        self._adjacency.setdefault(tab.id, set())
        return node

    def _refresh_embeddings(self) -> None:
        for node in self._nodes.values():
            node.embedding = tfidf_vector(
                node.keywords, self._total_documents, self._document_frequencies
            )

    def _ordered(self, a: str, b: str) -> tuple[str, str]:
        return (a, b) if self._position[a] <= self._position[b] else (b, a)

    def _put_edge(self, a: str, b: str, reason: EdgeReason, weight: float,
                  confidence: float, co_occurrence_count: Optional[int] = None) -> None:
        source, target = self._ordered(a, b)
        key = (source, target, reason)
        self._edges[key] = GraphEdge(
            source=source,
            target=target,
            weight=max(0.0, min(1.0, weight)),
            reason=reason,
            confidence=max(0.0, min(1.0, confidence)),
            co_occurrence_count=co_occurrence_count,
        )
        self._adjacency[source].add(key)
        self._adjacency[target].add(key)

    def _drop_edge(self, key: EdgeKey) -> None:
        if self._edges.pop(key, None) is None:
            return
        source, target, _ = key
        self._adjacency.get(source, set()).discard(key)
        self._adjacency.get(target, set()).discard(key)

    def _score_semantic_pair(self, a: GraphNode, b: GraphNode) -> None:
        combined = (
            sparse_cosine_similarity(a.embedding, b.embedding) * 0.6
            + keyword_overlap(a.keywords, b.keywords) * 0.4
        )
        if combined > SEMANTIC_EDGE_THRESHOLD:
            self._put_edge(a.id, b.id, EdgeReason.SEMANTIC, combined, combined * 1.2)

    def _rescore_semantic_edges(self) -> None:
        # Pairs without a shared keyword score exactly zero, so only
        # keyword-sharing pairs need rescoring.
        for key in [k for k in self._edges if k[2] == EdgeReason.SEMANTIC]:
            self._drop_edge(key)

        seen: set[tuple[str, str]] = set()
        for holders in self._keyword_index.values():
            if len(holders) < 2:
                continue
            for a, b in combinations(sorted(holders, key=self._position.__getitem__), 2):
                if (a, b) in seen:
                    continue
                seen.add((a, b))
                self._score_semantic_pair(self._nodes[a], self._nodes[b])

    def _link_domain_pair(self, a: GraphNode, b: GraphNode) -> None:
        if a.tab.domain and a.tab.domain == b.tab.domain:
            self._put_edge(a.id, b.id, EdgeReason.DOMAIN, DOMAIN_EDGE_WEIGHT, DOMAIN_EDGE_CONFIDENCE)

    def _recompute_co_occurrence(self) -> None:
        self._co_occurrence = {}
        for session in group_into_sessions(self._event_history, self.session_gap_ms):
            tab_ids = list(dict.fromkeys(e.tab_id for e in session))
            for a, b in combinations(tab_ids, 2):
                pair = frozenset((a, b))
                self._co_occurrence[pair] = self._co_occurrence.get(pair, 0) + 1

    def _link_temporal_pair(self, pair: frozenset) -> None:
        if len(pair) != 2 or not all(node_id in self._nodes for node_id in pair):
            return
        a, b = tuple(pair)
        count = self._co_occurrence[pair]
        weight = TEMPORAL_EDGE_WEIGHT + TEMPORAL_EDGE_INCREMENT * (count - 1)
        self._put_edge(a, b, EdgeReason.TEMPORAL, weight, TEMPORAL_EDGE_CONFIDENCE, count)

    def _mine_patterns(self) -> None:
        self.temporal_patterns = self._miner.mine_frequent_sequences(
            self._event_history, max_gap_ms=self.session_gap_ms
        )
        self._refresh_pattern_contexts()

    def _refresh_pattern_contexts(self) -> None:
        refreshed = []
        for pattern in self.temporal_patterns:
            contexts = [self._nodes[i].context.value for i in pattern.sequence if i in self._nodes]
            context = Counter(contexts).most_common(1)[0][0] if contexts else None
            refreshed.append(pattern.model_copy(update={"context": context}))
        self.temporal_patterns = refreshed

    # ------------------------------------------------------------------
    # Clustering
    # ------------------------------------------------------------------

    def detect_clusters(self) -> list[list[str]]:
        """Connected components (size >= 2) over edges heavier than 0.4."""
        visited: set[str] = set()
        clusters = []

        for start in self._nodes:
            if start in visited:
                continue
            visited.add(start)
            cluster = []
            queue = deque([start])
            while queue:
                current = queue.popleft()
                cluster.append(current)
                for key in sorted(self._adjacency.get(current, ()), key=self._edge_sort_key):
                    edge = self._edges[key]
                    neighbor = edge.other(current)
                    if neighbor not in visited and edge.weight > CLUSTER_EDGE_THRESHOLD:
                        visited.add(neighbor)
                        queue.append(neighbor)

            if len(cluster) >= 2:
                clusters.append(cluster)
        return clusters

    def _edge_sort_key(self, key: EdgeKey) -> tuple[int, int, str]:
        source, target, reason = key
        return (self._position[source], self._position[target], reason.value)

    def get_suggested_groups(self, min_cluster_size: int = 2) -> list[TabGroup]:
        """
        Clusters of related tabs, labelled and scored.

        Args:
            min_cluster_size: Smallest cluster returned (never below 2)

        Returns:
            One TabGroup per qualifying cluster; empty for an empty graph
        """
        min_size = max(2, min_cluster_size)
        groups = []
        for cluster in self.detect_clusters():
            if len(cluster) < min_size:
                continue
            groups.append(TabGroup(
                label=self.generate_group_label(cluster),
                tabs=[self._nodes[node_id].tab for node_id in cluster],
                confidence=self.cluster_confidence(cluster),
                reason=self.explain_group_reason(cluster),
            ))
        return groups

    def _idf(self, keyword: str) -> float:
        if self._total_documents <= 0:
            return 0.0
        df = self._document_frequencies.get(keyword) or 1
        return max(0.0, math.log(self._total_documents / df))

    def generate_group_label(self, cluster: Sequence[str]) -> str:
        """Top three member keywords by aggregate IDF, else the shared domain, else "Related Tabs"."""
        scores: dict[str, float] = {}
        for node_id in cluster:
            node = self._nodes.get(node_id)
            if node is None:
                continue
            for keyword in node.keywords:
                scores[keyword] = scores.get(keyword, 0.0) + self._idf(keyword)

        if scores:
            top = sorted(scores.items(), key=lambda kv: -kv[1])[:3]
            return " ".join(k[:1].upper() + k[1:] for k, _ in top)

        domains = {self._nodes[i].tab.domain for i in cluster if i in self._nodes} - {""}
        if len(domains) == 1:
            name = domains.pop().split(".")[0]
            return name[:1].upper() + name[1:]
        return "Related Tabs"

    def cluster_confidence(self, cluster: Sequence[str]) -> float:
        """Mean strongest-edge weight over connected member pairs, x1.2, capped at 1."""
        members = set(cluster)
        best: dict[frozenset, float] = {}
        for node_id in cluster:
            for edge in self.edges_for(node_id):
                if edge.source in members and edge.target in members:
                    pair = frozenset((edge.source, edge.target))
                    best[pair] = max(best.get(pair, 0.0), edge.weight)

        if not best:
            return 0.5
        return min(1.0, (sum(best.values()) / len(best)) * 1.2)

    def explain_group_reason(self, cluster: Sequence[str]) -> str:
        nodes = [self._nodes[i] for i in cluster if i in self._nodes]
        reasons = []

        if len({n.tab.domain for n in nodes}) == 1:
            reasons.append("same domain")
        contexts = {n.context for n in nodes}
        if len(contexts) == 1:
            reasons.append(f"all {next(iter(contexts)).value}")
        if any(all(i in p.sequence for i in cluster) for p in self.temporal_patterns):
            reasons.append("frequently opened together")

        if reasons:
            return f"Grouped because: {', '.join(reasons)}"
        return "Grouped by semantic similarity"

    # ------------------------------------------------------------------
    # Temporal queries
    # ------------------------------------------------------------------

    def get_matching_temporal_patterns(self, current_tab_ids: Sequence[str]) -> list[TemporalPattern]:
        n = len(current_tab_ids)
        return [
            p for p in self.temporal_patterns
            if len(p.sequence) >= n and p.sequence[:n] == list(current_tab_ids)
        ]

    def suggest_next_tabs(self, current_tab_ids: Sequence[str]) -> list[str]:
        """Next tab of the most frequent pattern that extends ``current_tab_ids``."""
        n = len(current_tab_ids)
        for pattern in self.get_matching_temporal_patterns(current_tab_ids):
            if len(pattern.sequence) > n:
                return [pattern.sequence[n]]
        return []

    # ------------------------------------------------------------------
    # Stats and persistence
    # ------------------------------------------------------------------

    def get_stats(self) -> GraphStats:
        node_count = len(self._nodes)
        edge_count = len(self._edges)
        return GraphStats(
            node_count=node_count,
            edge_count=edge_count,
            pattern_count=len(self.temporal_patterns),
            avg_degree=edge_count / node_count if node_count else 0.0,
        )

    def export_state(self) -> GraphSnapshot:
        """Plain-data snapshot of the graph (nodes in insertion order)."""
        return GraphSnapshot(
            nodes=[n.model_copy(deep=True) for n in self._nodes.values()],
            edges=[e.model_copy() for e in self._edges.values()],
            temporal_patterns=[p.model_copy(deep=True) for p in self.temporal_patterns],
            event_history=list(self._event_history),
            document_frequencies=dict(self._document_frequencies),
            total_documents=self._total_documents,
        )

    def restore_state(self, snapshot: GraphSnapshot) -> None:
        """
        Replace the graph contents with a previously exported snapshot.

        Edges referencing nodes absent from the snapshot are dropped.
        """
        self._reset()
        self._event_history = list(snapshot.event_history)[-self.max_history:]
        self._document_frequencies = dict(snapshot.document_frequencies)
        self._total_documents = snapshot.total_documents

        for node in snapshot.nodes:
            node = node.model_copy(deep=True)
            self._nodes[node.id] = node
            self._position[node.id] = self._next_position
            self._next_position += 1
            self._adjacency[node.id] = set()
            for keyword in node.keywords:
                self._keyword_index.setdefault(keyword, set()).add(node.id)

        for edge in snapshot.edges:
            if edge.source in self._nodes and edge.target in self._nodes:
                self._put_edge(edge.source, edge.target, edge.reason, edge.weight,
                               edge.confidence, edge.co_occurrence_count)

        self._recompute_co_occurrence()
        self.temporal_patterns = [p.model_copy(deep=True) for p in snapshot.temporal_patterns]
