# tests/unit/graph/layers/test_unit_community_integrator.py — v2
"""Tests for graph/layers/community_integrator.py — label write-back."""

from __future__ import annotations

from kgweave.graph.layers.community_detector import detect_communities
from kgweave.graph.layers.community_integrator import integrate_communities
from kgweave.graph.layers.models import Community, CommunityHierarchy


class TestIntegrateCommunities:
    def test_labels_every_level(self, two_triangles):
        hierarchy = detect_communities(two_triangles)
        integrate_communities(two_triangles, hierarchy)
        node = two_triangles.get_node("A")
        assert len(node.communities) == hierarchy.num_levels
        assert "0:0" in node.communities

    def test_unassigned_nodes_get_nothing(self, disconnected_graph):
        hierarchy = detect_communities(disconnected_graph)
        integrate_communities(disconnected_graph, hierarchy)
        assert disconnected_graph.get_node("A").communities
        assert disconnected_graph.get_node("C").communities == set()
        assert disconnected_graph.get_node("D").communities == set()

    def test_clear_existing(self, two_triangles):
        two_triangles.get_node("A").communities = {"stale"}
        integrate_communities(two_triangles, CommunityHierarchy())
        assert two_triangles.get_node("A").communities == set()

    def test_keep_existing(self, two_triangles):
        two_triangles.get_node("A").communities = {"stale"}
        hierarchy = CommunityHierarchy(
            communities=[Community(community_id="3", level=0, members=["A", "GHOST"])],
            total_communities=1,
        )
        integrate_communities(two_triangles, hierarchy, clear_existing=False)
        assert two_triangles.get_node("A").communities == {"stale", "0:3"}

    def test_structure_untouched(self, two_triangles):
        integrate_communities(two_triangles, detect_communities(two_triangles))
        assert two_triangles.number_of_nodes() == 6
        assert two_triangles.number_of_edges() == 5
