# src/graph/entity_resolver.py — v1
"""Entity resolution — deduplicate graph nodes in place.

Four stages:
  1. Bucket nodes by entity_type (only same-typed nodes are compared).
  2. Candidate pairs from the name heuristic (core.similarity.is_similar_name).
  3. Batched confirmation by a DecisionOracle; batches run concurrently.
  4. Transitive merge: confirmed pairs form an auxiliary graph whose
     connected components are merged, each into its earliest node.

Stage 4 starts only after every batch has resolved, and applies merges one
cluster at a time. A failing batch or an unreadable decision counts as
"no match" for the pairs involved and never aborts the run.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import networkx as nx

from kgweave.core.models import UNTYPED_ENTITY, GraphEdge
from kgweave.core.similarity import is_similar_name
from kgweave.graph.model import GraphModel, merge_descriptions, merge_edge_into
from kgweave.graph.resolution_oracle import CandidatePair, DecisionOracle

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_CONCURRENCY = 4

ProgressCallback = Callable[[str], None]


@dataclass
class ResolutionResult:
    """Outcome of one resolution run. ``graph`` is the mutated input graph."""

    graph: GraphModel
    candidate_pairs: int = 0
    confirmed_pairs: list[tuple[str, str]] = field(default_factory=list)
    merged_clusters: list[list[str]] = field(default_factory=list)
    failed_batches: int = 0
    unparsable_decisions: int = 0
    stats: dict[str, int] = field(default_factory=dict)


def bucket_by_type(graph: GraphModel) -> dict[str, list[str]]:
    """Node ids grouped by entity_type, in graph order."""
    buckets: dict[str, list[str]] = {}
    for node in graph.nodes():
        buckets.setdefault(node.entity_type or UNTYPED_ENTITY, []).append(node.id)
    return buckets


def generate_candidates(graph: GraphModel) -> dict[str, list[tuple[str, str]]]:
    """Similar-looking same-typed pairs, per type bucket."""
    candidates: dict[str, list[tuple[str, str]]] = {}
    for etype, ids in bucket_by_type(graph).items():
        pairs = [
            (ids[i], ids[j])
            for i in range(len(ids))
            for j in range(i + 1, len(ids))
            if is_similar_name(ids[i], ids[j])
        ]
        if pairs:
            candidates[etype] = pairs
    return candidates


def coerce_decisions(raw: Any, size: int) -> tuple[list[bool], int]:
    """Normalize an oracle answer to ``size`` booleans.

    Only ``True`` (or the strings "yes"/"true") counts as a match. Returns the
    decisions and how many entries could not be read.
    """
    if isinstance(raw, (str, bytes)) or not hasattr(raw, "__iter__"):
        return [False] * size, size
    items = list(raw)
    decisions: list[bool] = []
    unreadable = 0
    for i in range(size):
        if i >= len(items):
            decisions.append(False)
            unreadable += 1
            continue
        value = items[i]
        if isinstance(value, bool):
            decisions.append(value)
        elif isinstance(value, str) and value.strip().lower() in ("yes", "true", "no", "false"):
            decisions.append(value.strip().lower() in ("yes", "true"))
        else:
            decisions.append(False)
            unreadable += 1
    return decisions, unreadable


def merge_cluster(graph: GraphModel, cluster: list[str]) -> str:
    """Merge every node of ``cluster`` into its first node.

    Descriptions are appended, source ids unioned and incident edges rewired
    onto the target; when the target already has an edge to the same
    neighbor the two edges are folded (weights summed). Edges between two
    cluster members are dropped.

    Returns:
        The surviving node id.
    """
    target_id = cluster[0]
    target = graph.get_node(target_id)
    for member_id in cluster[1:]:
        member = graph.get_node(member_id)
        target.description = merge_descriptions(target.description, member.description)
        target.source_ids |= member.source_ids

        incident = graph.incident_edges(member_id)
        for edge in incident:
            graph.remove_edge(edge.source, edge.target)
        for edge in incident:
            neighbor = edge.target if edge.source == member_id else edge.source
            if neighbor == target_id:
                continue
            rewired = GraphEdge(
                source=target_id,
                target=neighbor,
                description=edge.description,
                weight=edge.weight,
                keywords=set(edge.keywords),
                source_ids=set(edge.source_ids),
            )
            if graph.has_edge(target_id, neighbor):
                merge_edge_into(graph.get_edge(target_id, neighbor), rewired)
            else:
                graph.add_edge(rewired)

        graph.remove_node(member_id)
    return target_id


async def run_entity_resolution(
    graph: GraphModel,
    oracle: DecisionOracle,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    callback: ProgressCallback | None = None,
) -> ResolutionResult:
    """Resolve duplicate entities and report what happened.

    Args:
        graph: Graph to deduplicate (mutated in place).
        oracle: External confirmation oracle.
        batch_size: Pairs per oracle call.
        max_concurrency: Oracle calls allowed in flight at once.
        callback: Optional progress sink receiving human-readable messages.

    Returns:
        ResolutionResult with the mutated graph and per-stage counters.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    notify = callback or (lambda _msg: None)
    result = ResolutionResult(graph=graph)
    nodes_before = graph.number_of_nodes()

    candidates = generate_candidates(graph)
    result.candidate_pairs = sum(len(p) for p in candidates.values())
    notify(f"Identified {result.candidate_pairs} candidate pairs for resolution.")
    logger.info("Entity resolution: %d candidate pairs", result.candidate_pairs)

    if result.candidate_pairs == 0:
        result.stats = _stats(result, nodes_before, graph)
        return result

    batches: list[list[CandidatePair]] = []
    for etype, pairs in candidates.items():
        for start in range(0, len(pairs), batch_size):
            batches.append([(etype, a, b) for a, b in pairs[start:start + batch_size]])

    semaphore = asyncio.Semaphore(max(1, max_concurrency))
    confirm_is_async = inspect.iscoroutinefunction(oracle.confirm)

    async def _confirm(batch: list[CandidatePair]) -> Any:
        async with semaphore:
            if confirm_is_async:
                return await oracle.confirm(batch)
            # Plain oracles run in worker threads so batches still overlap.
            answer = await asyncio.to_thread(oracle.confirm, batch)
            if inspect.isawaitable(answer):
                answer = await answer
            return answer

    # Join point: every batch resolves before the graph is touched.
    answers = await asyncio.gather(*(_confirm(b) for b in batches), return_exceptions=True)

    confirmed: dict[tuple[str, str], None] = {}
    for batch_no, (batch, answer) in enumerate(zip(batches, answers)):
        if isinstance(answer, Exception):
            result.failed_batches += 1
            logger.warning(
                "Oracle batch %d (%d pairs) failed: %s", batch_no, len(batch), answer
            )
            notify(f"ERROR: oracle batch {batch_no} failed: {answer}")
            continue
        decisions, unreadable = coerce_decisions(answer, len(batch))
        if unreadable:
            result.unparsable_decisions += unreadable
            logger.warning(
                "Oracle batch %d: %d unreadable decisions treated as no match",
                batch_no, unreadable,
            )
        for (_etype, a, b), same in zip(batch, decisions):
            if same:
                confirmed[(a, b) if a <= b else (b, a)] = None

    result.confirmed_pairs = list(confirmed)
    notify(f"Oracle identified {len(result.confirmed_pairs)} pairs to merge.")

    result.merged_clusters = _merge_clusters(graph, result.confirmed_pairs)
    for cluster in result.merged_clusters:
        merge_cluster(graph, cluster)
        notify(f"Merged {', '.join(cluster[1:])} into {cluster[0]}")

    result.stats = _stats(result, nodes_before, graph)
    logger.info("Entity resolution complete: %s", result.stats)
    return result


async def resolve_entities(
    graph: GraphModel,
    oracle: DecisionOracle,
    batch_size: int = DEFAULT_BATCH_SIZE,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    callback: ProgressCallback | None = None,
) -> GraphModel:
    """Deduplicate ``graph`` in place and return it."""
    result = await run_entity_resolution(
        graph, oracle,
        batch_size=batch_size,
        max_concurrency=max_concurrency,
        callback=callback,
    )
    return result.graph


def _merge_clusters(graph: GraphModel, pairs: list[tuple[str, str]]) -> list[list[str]]:
    """Connected components of the confirmed-pair graph, in graph node order."""
    if not pairs:
        return []
    links = nx.Graph()
    links.add_edges_from(pairs)
    order = {nid: i for i, nid in enumerate(graph.node_ids())}
    clusters = [
        sorted(component, key=order.__getitem__)
        for component in nx.connected_components(links)
    ]
    clusters.sort(key=lambda c: order[c[0]])
    return clusters


def _stats(result: ResolutionResult, nodes_before: int, graph: GraphModel) -> dict[str, int]:
    return {
        "nodes_before": nodes_before,
        "nodes_after": graph.number_of_nodes(),
        "candidate_pairs": result.candidate_pairs,
        "confirmed_pairs": len(result.confirmed_pairs),
        "merged_clusters": len(result.merged_clusters),
        "failed_batches": result.failed_batches,
        "unparsable_decisions": result.unparsable_decisions,
    }
