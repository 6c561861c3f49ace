# src/graph/builder.py — v2
"""Knowledge graph builder — constructs a GraphModel from raw extraction records.

Entity mentions sharing a normalized name collapse into one node; relationship
mentions sharing an unordered endpoint pair collapse into one edge whose
weight is the sum of the mention weights.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass

from kgweave.core.models import (
    GRAPH_FIELD_SEP,
    GraphEdge,
    GraphNode,
    RawEntity,
    RawRelationship,
    normalize_node_id,
)
from kgweave.graph.model import GraphInvariantError, GraphModel, edge_key

logger = logging.getLogger(__name__)


@dataclass
class BuildStats:
    """Counters reported by build_graph_with_stats."""

    raw_entities: int = 0
    raw_relationships: int = 0
    nodes: int = 0
    edges: int = 0
    skipped_self_loops: int = 0
    skipped_empty_names: int = 0


def build_graph(
    entities: list[RawEntity],
    relationships: list[RawRelationship],
) -> GraphModel:
    """Build a fresh GraphModel from raw entities and relationships."""
    graph, _stats = build_graph_with_stats(entities, relationships)
    return graph


def build_graph_with_stats(
    entities: list[RawEntity],
    relationships: list[RawRelationship],
) -> tuple[GraphModel, BuildStats]:
    """Build a GraphModel and report how the raw records were folded.

    Args:
        entities: Entity mentions from all chunks.
        relationships: Relationship mentions from all chunks.

    Returns:
        (graph, stats)

    Raises:
        GraphInvariantError: If a relationship references an entity that was
            never extracted.
    """
    stats = BuildStats(raw_entities=len(entities), raw_relationships=len(relationships))
    graph = GraphModel()

    # Group entity mentions by canonical name (insertion order preserved)
    grouped_nodes: dict[str, list[RawEntity]] = {}
    for ent in entities:
        node_id = normalize_node_id(ent.name)
        if not node_id:
            stats.skipped_empty_names += 1
            continue
        grouped_nodes.setdefault(node_id, []).append(ent)

    for node_id, mentions in grouped_nodes.items():
        graph.add_node(_merge_entity_mentions(node_id, mentions))

    # Group relationship mentions by canonical pair
    grouped_edges: dict[tuple[str, str], list[RawRelationship]] = {}
    for rel in relationships:
        key = edge_key(rel.source, rel.target)
        if key[0] == key[1]:
            stats.skipped_self_loops += 1
            logger.warning("Skipping self-referencing relationship on %s", key[0])
            continue
        for endpoint in key:
            if not graph.has_node(endpoint):
                raise GraphInvariantError(
                    f"Relationship {key[0]!r} -- {key[1]!r} references "
                    f"unknown entity {endpoint!r}"
                )
        grouped_edges.setdefault(key, []).append(rel)

    for key, mentions in grouped_edges.items():
        graph.add_edge(_merge_relationship_mentions(key, mentions))

    stats.nodes = graph.number_of_nodes()
    stats.edges = graph.number_of_edges()
    logger.info(
        "Built graph: %d nodes, %d edges (from %d entity / %d relationship mentions)",
        stats.nodes, stats.edges, stats.raw_entities, stats.raw_relationships,
    )
    return graph, stats


def _merge_entity_mentions(node_id: str, mentions: list[RawEntity]) -> GraphNode:
    """Most frequent type wins (first seen on ties); descriptions deduplicated."""
    type_counts = Counter(m.entity_type.strip().upper() for m in mentions if m.entity_type.strip())
    entity_type = type_counts.most_common(1)[0][0] if type_counts else None
    return GraphNode(
        id=node_id,
        entity_type=entity_type,
        description=_join_unique(m.description for m in mentions),
        source_ids={m.source_id for m in mentions if m.source_id},
    )


def _merge_relationship_mentions(
    key: tuple[str, str],
    mentions: list[RawRelationship],
) -> GraphEdge:
    keywords: set[str] = set()
    for m in mentions:
        keywords.update(m.keywords)
    return GraphEdge(
        source=key[0],
        target=key[1],
        description=_join_unique(m.description for m in mentions),
        weight=sum(m.weight for m in mentions),
        keywords=keywords,
        source_ids={m.source_id for m in mentions if m.source_id},
    )


def _join_unique(descriptions) -> str:
    seen: dict[str, None] = {}
    for d in descriptions:
        d = d.strip()
        if d:
            seen[d] = None
    return f" {GRAPH_FIELD_SEP} ".join(seen)
