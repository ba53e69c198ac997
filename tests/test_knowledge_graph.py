"""
Unit tests for the tab knowledge graph.

Tests the core graph logic including:
- Full builds and cluster detection
- Incremental updates matching full rebuilds
- Temporal edges from session co-occurrence
- Plain-data export and restore
"""

import pytest

from tabgraph_router.graph.knowledge_graph import (
    DOMAIN_EDGE_WEIGHT,
    TEMPORAL_EDGE_WEIGHT,
    TabKnowledgeGraph,
    classify_context,
)
from tabgraph_router.graph.models import EdgeReason, GraphSnapshot, Tab, TabContext


def edge_set(graph):
    """Direction-free view of a graph's edges for comparisons."""
    return {
        (frozenset((e.source, e.target)), e.reason, round(e.weight, 9), e.co_occurrence_count)
        for e in graph.edges
    }


@pytest.fixture
def built_graph(sample_tabs):
    graph = TabKnowledgeGraph()
    graph.build_graph(sample_tabs, [])
    return graph


class TestBuildGraph:
    """Tests for full graph builds."""

    def test_one_node_per_tab(self, built_graph, sample_tabs):
        assert set(built_graph.node_ids) == {t.id for t in sample_tabs}
        assert built_graph.build_count == 1

    def test_edges_are_bounded(self, built_graph):
        assert built_graph.edges
        for edge in built_graph.edges:
            assert 0.0 <= edge.weight <= 1.0
            assert 0.0 <= edge.confidence <= 1.0
            assert edge.source in built_graph.node_ids
            assert edge.target in built_graph.node_ids

    def test_duplicate_tab_ids_keep_first(self):
        graph = TabKnowledgeGraph()
        graph.build_graph([
            Tab(id="1", url="https://a.com", title="First"),
            Tab(id="1", url="https://b.com", title="Second"),
        ])

        assert graph.node_ids == ["1"]
        assert graph.get_node("1").tab.title == "First"

    def test_empty_graph(self):
        graph = TabKnowledgeGraph()
        graph.build_graph([], [])

        stats = graph.get_stats()
        assert stats.node_count == 0
        assert stats.edge_count == 0
        assert stats.pattern_count == 0
        assert stats.avg_degree == 0.0
        assert graph.get_suggested_groups(2) == []

    def test_same_domain_pair_clusters(self):
        graph = TabKnowledgeGraph()
        graph.build_graph([
            Tab(id="g1", url="https://github.com/alpha", title="Alpha"),
            Tab(id="g2", url="https://github.com/beta", title="Beta"),
            Tab(id="u1", url="https://unrelated.io/gamma", title="Gamma"),
        ], [])

        groups = graph.get_suggested_groups(2)

        assert len(groups) == 1
        assert set(groups[0].tab_ids) == {"g1", "g2"}
        assert groups[0].confidence >= 0.7

    def test_domain_edges_need_a_domain(self):
        graph = TabKnowledgeGraph()
        graph.build_graph([
            Tab(id="1", url="not a url", title="Alpha"),
            Tab(id="2", url="also not a url", title="Beta"),
        ])

        assert not [e for e in graph.edges if e.reason == EdgeReason.DOMAIN]

    def test_history_is_truncated(self, sample_tabs, routine_history):
        graph = TabKnowledgeGraph(max_history=4)
        graph.build_graph(sample_tabs, routine_history)

        assert graph.event_history == routine_history[-4:]


class TestClusters:
    """Tests for clustering, labels and reasons."""

    def test_groups_follow_domains(self, built_graph):
        groups = built_graph.get_suggested_groups(2)

        assert [set(g.tab_ids) for g in groups] == [{"1", "2"}, {"3", "4"}]

    def test_group_label_uses_top_keywords(self, built_graph):
        groups = built_graph.get_suggested_groups(2)

        assert groups[0].label.startswith("Linkedin")
        assert len(groups[0].label.split()) == 3

    def test_group_reason(self, built_graph):
        groups = built_graph.get_suggested_groups(2)

        assert groups[0].reason == "Grouped because: same domain, all work"

    def test_min_cluster_size_filters(self, built_graph):
        assert built_graph.get_suggested_groups(3) == []

    def test_label_falls_back_to_domain(self):
        graph = TabKnowledgeGraph()
        graph.build_graph([
            Tab(id="1", url="https://ab.io", title=""),
            Tab(id="2", url="https://ab.io", title=""),
        ])

        assert graph.generate_group_label(["1", "2"]) == "Ab"

    def test_label_default(self):
        graph = TabKnowledgeGraph()

        assert graph.generate_group_label([]) == "Related Tabs"

    def test_cluster_confidence_without_edges(self, built_graph):
        assert built_graph.cluster_confidence(["1", "5"]) == 0.5

    def test_context_classification(self):
        assert classify_context(Tab(id="1", url="https://github.com")) == TabContext.WORK
        assert classify_context(Tab(id="1", url="https://en.wikipedia.org")) == TabContext.RESEARCH
        assert classify_context(Tab(id="1", url="https://x.io", title="My cart")) == TabContext.SHOPPING
        assert classify_context(Tab(id="1", url="https://reddit.com")) == TabContext.SOCIAL
        assert classify_context(Tab(id="1", url="https://netflix.com")) == TabContext.ENTERTAINMENT
        assert classify_context(Tab(id="1", url="https://example.com")) == TabContext.OTHER


class TestIncrementalUpdates:
    """Incremental updates must match a full rebuild over the same tabs."""

    def test_add_node_matches_rebuild(self, sample_tabs):
        incremental = TabKnowledgeGraph()
        incremental.build_graph(sample_tabs[:-1], [])
        incremental.add_node(sample_tabs[-1])

        full = TabKnowledgeGraph()
        full.build_graph(sample_tabs, [])

        assert incremental.node_ids == full.node_ids
        assert edge_set(incremental) == edge_set(full)
        assert incremental.document_frequencies == full.document_frequencies
        assert incremental.total_documents == full.total_documents

    def test_remove_node_matches_rebuild(self, sample_tabs):
        incremental = TabKnowledgeGraph()
        incremental.build_graph(sample_tabs, [])
        assert incremental.remove_node("2")

        full = TabKnowledgeGraph()
        full.build_graph([t for t in sample_tabs if t.id != "2"], [])

        assert edge_set(incremental) == edge_set(full)
        assert all(not e.touches("2") for e in incremental.edges)

    def test_remove_unknown_node(self, built_graph):
        assert built_graph.remove_node("missing") is False

    def test_update_replaces_tab(self, built_graph):
        built_graph.update_on_tab_change(
            Tab(id="5", url="https://github.com/org/wiki", title="GitHub Wiki"), "update"
        )

        groups = built_graph.get_suggested_groups(2)
        assert {"3", "4", "5"} in [set(g.tab_ids) for g in groups]

    def test_unknown_action_rejected(self, built_graph, sample_tabs):
        with pytest.raises(ValueError):
            built_graph.update_on_tab_change(sample_tabs[0], "move")

    def test_clone_is_independent(self, built_graph):
        copy = built_graph.clone()
        copy.remove_node("1")

        assert "1" in built_graph.node_ids
        assert "1" not in copy.node_ids


class TestTemporalEdges:
    """Tests for co-occurrence edges and mined patterns."""

    def test_co_occurring_tabs_get_temporal_edge(self, sample_tabs, make_session):
        history = make_session(["1", "5"], 0)

        graph = TabKnowledgeGraph()
        graph.build_graph(sample_tabs, history)

        temporal = [e for e in graph.edges if e.reason == EdgeReason.TEMPORAL]
        assert len(temporal) == 1
        assert {temporal[0].source, temporal[0].target} == {"1", "5"}
        assert temporal[0].weight == pytest.approx(TEMPORAL_EDGE_WEIGHT)
        assert temporal[0].co_occurrence_count == 1

    def test_temporal_edge_does_not_replace_domain_edge(self, sample_tabs, make_session):
        graph = TabKnowledgeGraph()
        graph.build_graph(sample_tabs, make_session(["1", "2"], 0))

        reasons = {e.reason for e in graph.edges_for("1") if e.touches("2")}
        assert EdgeReason.DOMAIN in reasons
        assert EdgeReason.TEMPORAL in reasons
        domain_edge = next(e for e in graph.edges_for("1") if e.reason == EdgeReason.DOMAIN)
        assert domain_edge.weight == pytest.approx(DOMAIN_EDGE_WEIGHT)

    def test_repeated_sessions_strengthen_edges(self, sample_tabs, make_session):
        history = make_session(["1", "5"], 0) + make_session(["1", "5"], 3_600_000 * 2)

        graph = TabKnowledgeGraph()
        graph.build_graph(sample_tabs, history)

        edge = next(e for e in graph.edges if e.reason == EdgeReason.TEMPORAL)
        assert edge.co_occurrence_count == 2
        assert edge.weight == pytest.approx(0.6)

    def test_add_event_matches_rebuild(self, sample_tabs, make_session):
        history = make_session(["1", "3"], 0)

        incremental = TabKnowledgeGraph()
        incremental.build_graph(sample_tabs, history[:1])
        incremental.add_event(history[1])

        full = TabKnowledgeGraph()
        full.build_graph(sample_tabs, history)

        assert edge_set(incremental) == edge_set(full)

    def test_patterns_mined_from_history(self, routine_history):
        tabs = [Tab(id=i, url=f"https://{i.lower()}.example.com", title=i) for i in "ABC"]

        graph = TabKnowledgeGraph()
        graph.build_graph(tabs, routine_history)

        assert ["A", "B", "C"] in [p.sequence for p in graph.temporal_patterns]
        assert graph.suggest_next_tabs(["A", "B"]) == ["C"]
        assert graph.suggest_next_tabs(["C"]) == []

    def test_visit_counts_from_history(self, routine_history):
        graph = TabKnowledgeGraph()
        graph.build_graph([Tab(id="A", url="https://a.example.com")], routine_history)

        assert graph.get_node("A").visit_count == 3


class TestPersistence:
    """Tests for plain-data export and restore."""

    def test_export_restore(self, sample_tabs, routine_history):
        graph = TabKnowledgeGraph()
        graph.build_graph(sample_tabs, routine_history)

        snapshot = GraphSnapshot.model_validate_json(graph.export_state().model_dump_json())
        restored = TabKnowledgeGraph()
        restored.restore_state(snapshot)

        assert restored.node_ids == graph.node_ids
        assert edge_set(restored) == edge_set(graph)
        assert restored.get_stats() == graph.get_stats()
        assert [g.tab_ids for g in restored.get_suggested_groups(2)] == [
            g.tab_ids for g in graph.get_suggested_groups(2)
        ]

    def test_restored_graph_accepts_updates(self, built_graph):
        restored = TabKnowledgeGraph()
        restored.restore_state(built_graph.export_state())
        restored.add_node(Tab(id="6", url="https://github.com/org/pulls", title="GitHub Pulls"))

        assert {"3", "4", "6"} in [set(g.tab_ids) for g in restored.get_suggested_groups(2)]
