# src/graph/model.py — v1
"""In-memory property graph shared by every graph algorithm.

Undirected and simple: at most one edge per unordered node pair, stored under
its canonical (source, target) key. Nodes live in a dense arena; removing a
node leaves a tombstone so that indices handed out earlier stay valid while a
caller iterates. ``compact()`` drops tombstones once mutation is over.

Invariant violations (dangling endpoints, raw self-loops, duplicate ids)
raise GraphInvariantError instead of being silently dropped.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any

import networkx as nx

from kgweave.core.models import (
    GRAPH_FIELD_SEP,
    GraphEdge,
    GraphNode,
    normalize_node_id,
)

logger = logging.getLogger(__name__)


class GraphInvariantError(ValueError):
    """Raised when an operation would break a structural graph invariant."""


def edge_key(a: str, b: str) -> tuple[str, str]:
    """Canonical (sorted) key of the undirected pair {a, b}."""
    a, b = normalize_node_id(a), normalize_node_id(b)
    return (a, b) if a <= b else (b, a)


class GraphModel:
    """Arena-backed undirected attributed graph."""

    def __init__(self) -> None:
        self._arena: list[GraphNode | None] = []
        self._index: dict[str, int] = {}
        self._edges: dict[tuple[str, str], GraphEdge] = {}
        # node id -> ordered neighbor ids (dict used as an ordered set)
        self._adjacency: dict[str, dict[str, None]] = {}

    # --- Nodes ---

    def add_node(self, node: GraphNode) -> GraphNode:
        if node.id in self._index:
            raise GraphInvariantError(f"Duplicate node id: {node.id!r}")
        self._index[node.id] = len(self._arena)
        self._arena.append(node)
        self._adjacency[node.id] = {}
        return node

    def has_node(self, node_id: str) -> bool:
        return normalize_node_id(node_id) in self._index

    def get_node(self, node_id: str) -> GraphNode:
        key = normalize_node_id(node_id)
        idx = self._index.get(key)
        if idx is None:
            raise KeyError(f"Unknown node: {node_id!r}")
        node = self._arena[idx]
        assert node is not None
        return node

    def node_index(self, node_id: str) -> int:
        """Stable arena position of a live node."""
        return self._index[normalize_node_id(node_id)]

    def remove_node(self, node_id: str) -> GraphNode:
        """Remove a node and every incident edge; its arena slot is tombstoned."""
        key = normalize_node_id(node_id)
        idx = self._index.pop(key, None)
        if idx is None:
            raise KeyError(f"Unknown node: {node_id!r}")
        for neighbor in list(self._adjacency[key]):
            self.remove_edge(key, neighbor)
        del self._adjacency[key]
        node = self._arena[idx]
        self._arena[idx] = None
        assert node is not None
        return node

    def nodes(self) -> Iterator[GraphNode]:
        """Live nodes in insertion order (tombstones skipped)."""
        return (n for n in self._arena if n is not None)

    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes()]

    def number_of_nodes(self) -> int:
        return len(self._index)

    # --- Edges ---

    def add_edge(self, edge: GraphEdge) -> GraphEdge:
        """Insert a new edge; both endpoints must exist and be distinct."""
        self._check_endpoints(edge)
        if edge.key in self._edges:
            raise GraphInvariantError(
                f"Duplicate edge: {edge.source!r} -- {edge.target!r}"
            )
        self._edges[edge.key] = edge
        self._adjacency[edge.source][edge.target] = None
        self._adjacency[edge.target][edge.source] = None
        return edge

    def upsert_edge(self, edge: GraphEdge) -> GraphEdge:
        """Insert an edge, or fold it into the existing edge of the same pair.

        Weights add up, keywords and source ids are unioned and a differing
        description is appended with GRAPH_FIELD_SEP.
        """
        self._check_endpoints(edge)
        existing = self._edges.get(edge.key)
        if existing is None:
            return self.add_edge(edge)
        merge_edge_into(existing, edge)
        return existing

    def has_edge(self, a: str, b: str) -> bool:
        return edge_key(a, b) in self._edges

    def get_edge(self, a: str, b: str) -> GraphEdge:
        key = edge_key(a, b)
        if key not in self._edges:
            raise KeyError(f"Unknown edge: {a!r} -- {b!r}")
        return self._edges[key]

    def remove_edge(self, a: str, b: str) -> GraphEdge:
        key = edge_key(a, b)
        edge = self._edges.pop(key, None)
        if edge is None:
            raise KeyError(f"Unknown edge: {a!r} -- {b!r}")
        self._adjacency[key[0]].pop(key[1], None)
        self._adjacency[key[1]].pop(key[0], None)
        return edge

    def edges(self) -> Iterator[GraphEdge]:
        return iter(list(self._edges.values()))

    def incident_edges(self, node_id: str) -> list[GraphEdge]:
        key = normalize_node_id(node_id)
        return [self._edges[edge_key(key, nb)] for nb in self._adjacency[key]]

    def neighbors(self, node_id: str) -> list[str]:
        key = normalize_node_id(node_id)
        if key not in self._adjacency:
            raise KeyError(f"Unknown node: {node_id!r}")
        return list(self._adjacency[key])

    def degree(self, node_id: str, weighted: bool = True) -> float:
        edges = self.incident_edges(node_id)
        if not weighted:
            return float(len(edges))
        return sum(e.weight for e in edges)

    def number_of_edges(self) -> int:
        return len(self._edges)

    def total_weight(self) -> float:
        """Sum of edge weights, each edge counted once."""
        return sum(e.weight for e in self._edges.values())

    # --- Whole-graph helpers ---

    def compact(self) -> None:
        """Rebuild the arena without tombstones (indices are reassigned)."""
        live = [n for n in self._arena if n is not None]
        self._arena = live
        self._index = {n.id: i for i, n in enumerate(live)}

    def copy(self) -> GraphModel:
        clone = GraphModel()
        for node in self.nodes():
            clone.add_node(node.model_copy(deep=True))
        for edge in self._edges.values():
            clone.add_edge(edge.model_copy(deep=True))
        return clone

    def to_networkx(self) -> nx.Graph:
        """Weighted NetworkX view; attributes are copied as plain dicts."""
        graph = nx.Graph()
        for node in self.nodes():
            graph.add_node(node.id, **node.model_dump(exclude={"id"}))
        for edge in self._edges.values():
            graph.add_edge(
                edge.source, edge.target, **edge.model_dump(exclude={"source", "target"})
            )
        return graph

    def to_records(self) -> dict[str, list[dict[str, Any]]]:
        """Serializable node / edge rows for the persistence collaborator."""
        return {
            "nodes": [n.model_dump(mode="json") for n in self.nodes()],
            "edges": [e.model_dump(mode="json") for e in self._edges.values()],
        }

    @classmethod
    def from_records(cls, records: dict[str, Iterable[dict[str, Any]]]) -> GraphModel:
        graph = cls()
        for row in records.get("nodes", []):
            graph.add_node(GraphNode.model_validate(row))
        for row in records.get("edges", []):
            graph.add_edge(GraphEdge.model_validate(row))
        return graph

    def _check_endpoints(self, edge: GraphEdge) -> None:
        if edge.source == edge.target:
            raise GraphInvariantError(f"Self-loop on {edge.source!r} is not allowed")
        for endpoint in (edge.source, edge.target):
            if endpoint not in self._index:
                raise GraphInvariantError(
                    f"Edge {edge.source!r} -- {edge.target!r} references "
                    f"missing node {endpoint!r}"
                )

    def __contains__(self, node_id: object) -> bool:
        return isinstance(node_id, str) and self.has_node(node_id)

    def __len__(self) -> int:
        return self.number_of_nodes()

    def __repr__(self) -> str:
        return f"GraphModel(nodes={self.number_of_nodes()}, edges={self.number_of_edges()})"


def merge_descriptions(first: str, second: str) -> str:
    """Join two descriptions with GRAPH_FIELD_SEP, skipping empty parts."""
    parts = [p for p in (first, second) if p]
    return f" {GRAPH_FIELD_SEP} ".join(parts)


def merge_edge_into(target: GraphEdge, other: GraphEdge) -> None:
    """Fold ``other`` into ``target`` in place (weights summed)."""
    target.weight += other.weight
    target.keywords |= other.keywords
    target.source_ids |= other.source_ids
    if other.description and other.description not in target.description:
        target.description = merge_descriptions(target.description, other.description)
