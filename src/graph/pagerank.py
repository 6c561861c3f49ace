# src/graph/pagerank.py — v1
"""PageRank over the knowledge graph, used to weight communities.

Uses nx.pagerank when scipy is available, falls back to a pure-Python
weighted power iteration otherwise.
"""

from __future__ import annotations

import logging
from typing import Any

import networkx as nx

from kgweave.graph.model import GraphModel

logger = logging.getLogger(__name__)

DEFAULT_ALPHA = 0.15
DEFAULT_MAX_ITER = 100
DEFAULT_TOL = 1e-6


def pagerank_scores(
    graph: GraphModel,
    alpha: float = DEFAULT_ALPHA,
    max_iter: int = DEFAULT_MAX_ITER,
) -> dict[str, float]:
    """Weighted PageRank of every node.

    Args:
        graph: Knowledge graph.
        alpha: Teleport probability (damping = 1 - alpha).
        max_iter: Maximum iterations for convergence.

    Returns:
        Dict mapping node_id -> score (scores sum to 1).
    """
    if graph.number_of_nodes() == 0:
        return {}
    nx_graph = graph.to_networkx()
    try:
        return nx.pagerank(nx_graph, alpha=1.0 - alpha, max_iter=max_iter, weight="weight")
    except (ModuleNotFoundError, ImportError):
        logger.debug("scipy not available, using pure-Python PageRank fallback")
        return _pagerank_python(nx_graph, alpha, max_iter)
    except nx.PowerIterationFailedConvergence:
        logger.warning("PageRank failed to converge in %d iterations", max_iter)
        return _pagerank_python(nx_graph, alpha, max_iter * 2, tol=1e-4)


def assign_pagerank(
    graph: GraphModel,
    alpha: float = DEFAULT_ALPHA,
    force: bool = False,
) -> bool:
    """Store PageRank on every node unless some node already carries one.

    Returns:
        True if scores were (re)computed.
    """
    if not force and any(n.pagerank is not None for n in graph.nodes()):
        logger.debug("Keeping existing pagerank values")
        return False
    scores = pagerank_scores(graph, alpha=alpha)
    for node in graph.nodes():
        node.pagerank = float(scores.get(node.id, 0.0))
    logger.info("Assigned PageRank to %d nodes", len(scores))
    return True


def _pagerank_python(
    graph: nx.Graph,
    alpha: float = DEFAULT_ALPHA,
    max_iter: int = DEFAULT_MAX_ITER,
    tol: float = DEFAULT_TOL,
) -> dict:
    """Pure-Python weighted PageRank via power iteration.

      PR(v) = alpha / n
            + (1 - alpha) * (dangling_mass / n + sum(PR(u) * w(u, v) / strength(u)))

    For undirected graphs, each edge counts in both directions.
    """
    nodes = list(graph.nodes())
    n = len(nodes)
    if n == 0:
        return {}

    strength: dict[Any, float] = {
        v: sum(d.get("weight", 1.0) for _, _, d in graph.edges(v, data=True))
        for v in nodes
    }
    incoming: dict[Any, list[tuple[Any, float]]] = {v: [] for v in nodes}
    for u, v, data in graph.edges(data=True):
        w = data.get("weight", 1.0)
        if strength[u] > 0:
            incoming[v].append((u, w / strength[u]))
        if strength[v] > 0:
            incoming[u].append((v, w / strength[v]))

    dangling = [v for v in nodes if strength[v] == 0]
    scores = {v: 1.0 / n for v in nodes}
    damping = 1.0 - alpha

    for _iteration in range(max_iter):
        dangling_sum = sum(scores[v] for v in dangling)
        new_scores: dict[Any, float] = {}
        for v in nodes:
            rank = alpha / n + damping * dangling_sum / n
            for u, w in incoming[v]:
                rank += damping * scores[u] * w
            new_scores[v] = rank

        delta = sum(abs(new_scores[v] - scores[v]) for v in nodes)
        scores = new_scores
        if delta < tol:
            break

    return scores
