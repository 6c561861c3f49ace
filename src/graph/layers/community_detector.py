# src/graph/layers/community_detector.py — v3
"""Hierarchical community detection via Leiden-style modularity optimization.

Each hierarchy level runs three phases over a LevelGraph:

  1. Local moving: greedy Louvain reassignment in a seeded random order.
  2. Refinement: communities split into connected components; split-out
     singletons may re-merge only where modularity improves and the target
     community stays connected.
  3. Aggregation: one super-node per community, intra-community weight kept
     as a self-loop, cross-community weights summed.

The aggregated graph feeds the next level until it stops shrinking or
max_levels is reached. Communities are always reported in terms of the
original node ids. Pure with respect to graph structure: only
community_integrator writes labels back onto nodes.
"""

from __future__ import annotations

import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field

import networkx as nx

from kgweave.graph.layers.models import (
    Community,
    CommunityHierarchy,
    DetectionOptions,
)
from kgweave.graph.model import GraphModel

logger = logging.getLogger(__name__)


@dataclass
class LevelGraph:
    """Integer-indexed weighted graph for one hierarchy level.

    ``adjacency[i][j]`` holds the weight of edge {i, j}; a self-loop is stored
    once under ``adjacency[i][i]``. ``members[i]`` lists the original node
    positions collapsed into super-node ``i``.
    """

    adjacency: list[dict[int, float]] = field(default_factory=list)
    members: list[list[int]] = field(default_factory=list)

    @property
    def n(self) -> int:
        return len(self.adjacency)

    @classmethod
    def empty(cls, n: int) -> LevelGraph:
        return cls(adjacency=[{} for _ in range(n)], members=[[i] for i in range(n)])

    @classmethod
    def from_edges(
        cls,
        n: int,
        edges: list[tuple[int, int, float]],
    ) -> LevelGraph:
        graph = cls.empty(n)
        for i, j, w in edges:
            graph.add_weight(i, j, w)
        return graph

    @classmethod
    def from_graph_model(cls, graph: GraphModel, node_ids: list[str]) -> LevelGraph:
        """Level-0 graph restricted to ``node_ids`` (positions follow that list)."""
        position = {nid: i for i, nid in enumerate(node_ids)}
        level = cls.empty(len(node_ids))
        for edge in graph.edges():
            i, j = position.get(edge.source), position.get(edge.target)
            if i is not None and j is not None:
                level.add_weight(i, j, edge.weight)
        return level

    def add_weight(self, i: int, j: int, w: float) -> None:
        self.adjacency[i][j] = self.adjacency[i].get(j, 0.0) + w
        if i != j:
            self.adjacency[j][i] = self.adjacency[j].get(i, 0.0) + w

    def total_weight(self) -> float:
        """m: sum of edge weights, each edge (and self-loop) counted once."""
        return sum(
            w for i, nbrs in enumerate(self.adjacency) for j, w in nbrs.items() if j >= i
        )

    def degrees(self) -> list[float]:
        """k[i]: incident weight; a self-loop touches its node at both ends."""
        return [sum(nbrs.values()) + nbrs.get(i, 0.0) for i, nbrs in enumerate(self.adjacency)]

    def self_loop(self, i: int) -> float:
        return self.adjacency[i].get(i, 0.0)

    def induced_subgraph(self, nodes: list[int]) -> nx.Graph:
        """NetworkX view of the subgraph induced by ``nodes`` (order kept)."""
        keep = set(nodes)
        sub = nx.Graph()
        sub.add_nodes_from(nodes)
        for i in nodes:
            for j, w in self.adjacency[i].items():
                if j in keep and j != i:
                    sub.add_edge(i, j, weight=w)
        return sub


# --- Modularity ---


def modularity_gain(
    k_in: float,
    k_i: float,
    tot_c: float,
    m: float,
    resolution: float = 1.0,
) -> float:
    """ΔQ of adding an isolated node to community C.

    ``k_in / m - resolution * k_i * tot_c / (2 m^2)``
    """
    if m == 0:
        return 0.0
    return k_in / m - resolution * k_i * tot_c / (2 * m * m)


def calculate_modularity(
    graph: LevelGraph,
    communities: list[int],
    resolution: float = 1.0,
) -> float:
    """Newman modularity Q of a partition; 0.0 for an empty or weightless graph."""
    m = graph.total_weight()
    if graph.n == 0 or m == 0:
        return 0.0
    k = graph.degrees()
    internal: dict[int, float] = defaultdict(float)
    degree_sum: dict[int, float] = defaultdict(float)
    for i, nbrs in enumerate(graph.adjacency):
        degree_sum[communities[i]] += k[i]
        for j, w in nbrs.items():
            if j >= i and communities[i] == communities[j]:
                internal[communities[i]] += w
    return sum(
        internal[c] / m - resolution * (d / (2 * m)) ** 2
        for c, d in degree_sum.items()
    )


def _community_links(graph: LevelGraph, i: int, communities: list[int]) -> dict[int, float]:
    """k_{i,in}(C) for every community C adjacent to i (self-loop excluded)."""
    links: dict[int, float] = {}
    for j, w in graph.adjacency[i].items():
        if j == i:
            continue
        c = communities[j]
        links[c] = links.get(c, 0.0) + w
    return links


# --- Phase 1: local moving ---


def local_moving_phase(
    graph: LevelGraph,
    communities: list[int],
    seed: int,
    max_iterations: int = 10,
    resolution: float = 1.0,
) -> list[int]:
    """Greedy Louvain moves until a full pass moves nothing.

    Nodes are visited in an order reshuffled every pass by a generator seeded
    with ``seed``; a node leaves its community only for a strictly larger
    positive gain.
    """
    comm = list(communities)
    m = graph.total_weight()
    if graph.n == 0 or m == 0:
        return comm

    k = graph.degrees()
    tot: dict[int, float] = defaultdict(float)
    for i, c in enumerate(comm):
        tot[c] += k[i]

    rng = random.Random(seed & 0xFFFFFFFF)
    order = list(range(graph.n))

    for iteration in range(max_iterations):
        rng.shuffle(order)
        moves = 0
        for i in order:
            k_i = k[i]
            if k_i == 0:
                continue
            current = comm[i]
            tot[current] -= k_i
            links = _community_links(graph, i, comm)

            best_c = current
            best_gain = 0.0
            if current in links:
                best_gain = max(
                    0.0, modularity_gain(links[current], k_i, tot[current], m, resolution)
                )
            for c, k_in in links.items():
                if c == current:
                    continue
                gain = modularity_gain(k_in, k_i, tot[c], m, resolution)
                if gain > best_gain:
                    best_gain = gain
                    best_c = c

            comm[i] = best_c
            tot[best_c] += k_i
            if best_c != current:
                moves += 1

        logger.debug("Local moving pass %d: %d moves", iteration + 1, moves)
        if moves == 0:
            break

    return comm


# --- Phase 2: refinement ---


def refinement_phase(
    graph: LevelGraph,
    communities: list[int],
    resolution: float = 1.0,
) -> list[int]:
    """Split disconnected communities, then re-merge split-out singletons.

    After this phase every community induces a connected subgraph. Split-out
    components with more than one node keep their fresh label and are never
    re-merged.
    """
    comm = list(communities)
    m = graph.total_weight()
    if graph.n == 0 or m == 0:
        return comm

    by_comm: dict[int, list[int]] = {}
    for i, c in enumerate(comm):
        by_comm.setdefault(c, []).append(i)

    next_label = max(comm) + 1
    split_singletons: list[int] = []
    for nodes in by_comm.values():
        if len(nodes) <= 1:
            continue
        components = [
            sorted(c) for c in nx.connected_components(graph.induced_subgraph(nodes))
        ]
        if len(components) <= 1:
            continue
        components.sort(key=lambda c: c[0])
        # The first component keeps the label, the others get fresh ones.
        for component in components[1:]:
            for v in component:
                comm[v] = next_label
            next_label += 1
        split_singletons.extend(c[0] for c in components if len(c) == 1)

    if not split_singletons:
        return comm

    k = graph.degrees()
    tot: dict[int, float] = defaultdict(float)
    members: dict[int, set[int]] = defaultdict(set)
    for i, c in enumerate(comm):
        tot[c] += k[i]
        members[c].add(i)

    merged = 0
    for i in sorted(split_singletons):
        k_i = k[i]
        if k_i == 0:
            continue
        current = comm[i]
        tot[current] -= k_i
        members[current].discard(i)

        best_c = current
        best_gain = 0.0
        for c, k_in in _community_links(graph, i, comm).items():
            if c == current:
                continue
            gain = modularity_gain(k_in, k_i, tot[c], m, resolution)
            if gain > best_gain and _connected_after_merge(graph, members[c], i):
                best_gain = gain
                best_c = c

        comm[i] = best_c
        tot[best_c] += k_i
        members[best_c].add(i)
        if best_c != current:
            merged += 1

    logger.debug(
        "Refinement: %d split-out singletons, %d re-merged",
        len(split_singletons), merged,
    )
    return comm


def _connected_after_merge(graph: LevelGraph, community: set[int], node: int) -> bool:
    """True if community ∪ {node} induces a single connected component."""
    nodes = sorted(community | {node})
    if len(nodes) <= 1:
        return True
    return nx.is_connected(graph.induced_subgraph(nodes))


# --- Phase 3: aggregation ---


def relabel_communities(communities: list[int]) -> list[int]:
    """Dense labels 0..c-1 in order of first appearance."""
    mapping: dict[int, int] = {}
    return [mapping.setdefault(c, len(mapping)) for c in communities]


def aggregation_phase(graph: LevelGraph, communities: list[int]) -> LevelGraph:
    """Collapse each community into a super-node.

    ``communities`` must be dense (see relabel_communities); super-node ``c``
    stands for community ``c``. Total weight m is conserved.
    """
    count = max(communities) + 1 if communities else 0
    aggregated = LevelGraph(
        adjacency=[{} for _ in range(count)],
        members=[[] for _ in range(count)],
    )
    for i, c in enumerate(communities):
        aggregated.members[c].extend(graph.members[i])
    for i, nbrs in enumerate(graph.adjacency):
        for j, w in nbrs.items():
            if j >= i:
                aggregated.add_weight(communities[i], communities[j], w)
    return aggregated


# --- Driver ---


def detect_communities(
    graph: GraphModel,
    options: DetectionOptions | None = None,
) -> CommunityHierarchy:
    """Run hierarchical Leiden over the graph.

    Args:
        graph: Knowledge graph (read-only here).
        options: Detection options; defaults apply when None.

    Returns:
        CommunityHierarchy with one partition of the working nodes per level.
        With ``use_largest_component`` only the largest connected component
        is clustered; other nodes are listed in ``unassigned_nodes``.
    """
    options = options or DetectionOptions()
    hierarchy = CommunityHierarchy(resolution=options.resolution, seed=options.seed)
    if graph.number_of_nodes() == 0:
        return hierarchy

    node_ids = graph.node_ids()
    if options.use_largest_component:
        working_ids = _largest_component(graph)
        keep = set(working_ids)
        hierarchy.unassigned_nodes = [n for n in node_ids if n not in keep]
    else:
        working_ids = node_ids

    current = LevelGraph.from_graph_model(graph, working_ids)
    # Original node position -> super-node of the current level.
    node_to_super = list(range(len(working_ids)))
    per_level: list[list[int]] = []

    for level in range(options.max_levels):
        logger.debug("Leiden level %d: %d nodes", level, current.n)
        communities = local_moving_phase(
            current,
            list(range(current.n)),
            seed=options.seed + level,
            max_iterations=options.max_local_iterations,
            resolution=options.resolution,
        )
        communities = refinement_phase(current, communities, options.resolution)
        communities = relabel_communities(communities)

        per_level.append([communities[s] for s in node_to_super])
        hierarchy.modularity_by_level[level] = calculate_modularity(
            current, communities, options.resolution
        )

        aggregated = aggregation_phase(current, communities)
        if aggregated.n <= 1 or aggregated.n == current.n:
            break
        node_to_super = [communities[s] for s in node_to_super]
        current = aggregated

    hierarchy.communities = _build_communities(graph, working_ids, per_level)
    hierarchy.num_levels = len(per_level)
    hierarchy.total_communities = len(hierarchy.communities)

    logger.info(
        "Community detection: %d levels, %d communities, Q=%.4f (%d nodes unassigned)",
        hierarchy.num_levels,
        hierarchy.total_communities,
        hierarchy.modularity,
        len(hierarchy.unassigned_nodes),
    )
    return hierarchy


def _largest_component(graph: GraphModel) -> list[str]:
    """Largest connected component in node order (earliest wins ties)."""
    order = {nid: i for i, nid in enumerate(graph.node_ids())}
    best: list[str] = []
    for component in nx.connected_components(graph.to_networkx()):
        if len(component) > len(best):
            best = sorted(component, key=order.__getitem__)
    return best


def _build_communities(
    graph: GraphModel,
    working_ids: list[str],
    per_level: list[list[int]],
) -> list[Community]:
    communities: list[Community] = []
    for level, assignment in enumerate(per_level):
        grouped: dict[int, list[int]] = {}
        for pos, label in enumerate(assignment):
            grouped.setdefault(label, []).append(pos)

        level_comms: list[Community] = []
        for label, positions in grouped.items():
            members = [working_ids[p] for p in positions]
            parent_id = None
            if level + 1 < len(per_level):
                parent_id = str(per_level[level + 1][positions[0]])
            children: list[str] = []
            if level > 0:
                children = list(dict.fromkeys(str(per_level[level - 1][p]) for p in positions))
            level_comms.append(Community(
                community_id=str(label),
                level=level,
                members=members,
                weight=sum(graph.get_node(n).pagerank or 0.0 for n in members),
                parent_id=parent_id,
                children_ids=children,
                chunk_coverage=sorted(_collect_chunk_coverage(graph, members)),
            ))

        max_weight = max((c.weight for c in level_comms), default=0.0)
        if max_weight > 0:
            for c in level_comms:
                c.weight /= max_weight
        communities.extend(level_comms)
    return communities


def _collect_chunk_coverage(graph: GraphModel, members: list[str]) -> set[str]:
    """Collect all chunk ids covered by community members."""
    chunks: set[str] = set()
    for m in members:
        chunks.update(graph.get_node(m).source_ids)
    return chunks
