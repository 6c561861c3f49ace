# tests/unit/graph/test_unit_builder.py — v2
"""Tests for graph/builder.py — graph construction from raw extraction records."""

from __future__ import annotations

import pytest

from kgweave.core.models import RawEntity, RawRelationship
from kgweave.graph.builder import build_graph, build_graph_with_stats
from kgweave.graph.model import GraphInvariantError


class TestBuildGraph:
    def test_nodes_and_edges(self, sample_entities, sample_relationships):
        graph = build_graph(sample_entities, sample_relationships)
        assert graph.node_ids() == ["LIU BEI", "LIU-BEI", "GUAN YU", "SHU HAN"]
        assert graph.number_of_edges() == 3
        edge = graph.get_edge("Guan Yu", "Liu Bei")
        assert edge.weight == 2.0
        assert edge.keywords == {"oath", "brotherhood"}

    def test_entity_types_uppercased(self, sample_entities):
        graph = build_graph(sample_entities, [])
        assert graph.get_node("Liu Bei").entity_type == "PERSON"
        assert graph.get_node("Shu Han").entity_type == "ORGANIZATION"

    def test_mentions_fold_into_one_node(self):
        entities = [
            RawEntity(name="Alpha", entity_type="concept", description="first", source_id="c1"),
            RawEntity(name="ALPHA", entity_type="person", description="second", source_id="c2"),
            RawEntity(name="alpha", entity_type="person", description="first", source_id="c3"),
        ]
        graph = build_graph(entities, [])
        node = graph.get_node("alpha")
        assert graph.number_of_nodes() == 1
        assert node.entity_type == "PERSON"
        assert node.description == "first <SEP> second"
        assert node.source_ids == {"c1", "c2", "c3"}

    def test_relationship_mentions_sum_weights(self):
        entities = [RawEntity(name="a"), RawEntity(name="b")]
        relationships = [
            RawRelationship(source="a", target="b", weight=1.5, description="x"),
            RawRelationship(source="B", target="A", weight=2.5, description="y"),
        ]
        edge = build_graph(entities, relationships).get_edge("a", "b")
        assert edge.weight == 4.0
        assert edge.description == "x <SEP> y"

    def test_untyped_entity(self):
        graph = build_graph([RawEntity(name="x", entity_type="")], [])
        assert graph.get_node("x").entity_type == "-"


class TestBuildStats:
    def test_self_loops_skipped(self):
        entities = [RawEntity(name="a"), RawEntity(name="b")]
        relationships = [
            RawRelationship(source="a", target="A"),
            RawRelationship(source="a", target="b"),
        ]
        graph, stats = build_graph_with_stats(entities, relationships)
        assert stats.skipped_self_loops == 1
        assert stats.edges == 1
        assert graph.number_of_edges() == 1

    def test_empty_names_skipped(self):
        _graph, stats = build_graph_with_stats([RawEntity(name="  "), RawEntity(name="a")], [])
        assert stats.skipped_empty_names == 1
        assert stats.nodes == 1

    def test_dangling_relationship_raises(self):
        with pytest.raises(GraphInvariantError, match="unknown entity"):
            build_graph([RawEntity(name="a")], [RawRelationship(source="a", target="ghost")])

    def test_empty_input(self):
        graph, stats = build_graph_with_stats([], [])
        assert graph.number_of_nodes() == 0
        assert stats.raw_entities == 0
