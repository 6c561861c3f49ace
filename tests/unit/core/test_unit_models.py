# tests/unit/core/test_unit_models.py — v2
"""Tests for core/models.py — graph record validation and normalization."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from kgweave.core.models import (
    UNTYPED_ENTITY,
    GraphEdge,
    GraphNode,
    RawRelationship,
    clean_str,
    normalize_node_id,
)


class TestNormalization:
    def test_clean_str_unescapes_and_strips(self):
        assert clean_str('  &quot;Alpha&quot; ') == "Alpha"

    def test_clean_str_drops_angle_brackets(self):
        assert clean_str("<Beta>") == "Beta"

    def test_normalize_node_id_uppercases(self):
        assert normalize_node_id(" liu bei ") == "LIU BEI"


class TestGraphNode:
    def test_id_normalized(self):
        assert GraphNode(id="alpha").id == "ALPHA"

    def test_empty_id_rejected(self):
        with pytest.raises(ValidationError):
            GraphNode(id="  ")

    def test_missing_type_defaults(self):
        assert GraphNode(id="a", entity_type=None).entity_type == UNTYPED_ENTITY
        assert GraphNode(id="a", entity_type=" ").entity_type == UNTYPED_ENTITY

    def test_negative_pagerank_rejected(self):
        with pytest.raises(ValidationError):
            GraphNode(id="a", pagerank=-0.1)


class TestGraphEdge:
    def test_canonical_order(self):
        edge = GraphEdge(source="zeta", target="alpha")
        assert edge.key == ("ALPHA", "ZETA")

    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError):
            GraphEdge(source="a", target="b", weight=-1)


class TestRawRelationship:
    def test_keywords_from_comma_string(self):
        rel = RawRelationship(source="a", target="b", keywords="war, alliance ,")
        assert rel.keywords == ["war", "alliance"]
