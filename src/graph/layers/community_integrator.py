# src/graph/layers/community_integrator.py — v2
"""Community integrator — attach community labels to graph nodes.

ONLY module that writes detection results back onto the graph. Annotation
only: no node or edge is added or removed.
"""

from __future__ import annotations

import logging

from kgweave.graph.layers.models import CommunityHierarchy
from kgweave.graph.model import GraphModel

logger = logging.getLogger(__name__)


def integrate_communities(
    graph: GraphModel,
    hierarchy: CommunityHierarchy,
    clear_existing: bool = True,
) -> GraphModel:
    """Attach ``"<level>:<community_id>"`` labels to every member node.

    Args:
        graph: Graph the hierarchy was computed on.
        hierarchy: Community detection result.
        clear_existing: Drop labels from a previous run first, so that nodes
            outside the clustered component end up with no community.

    Returns:
        The same graph, annotated.
    """
    if clear_existing:
        for node in graph.nodes():
            node.communities = set()

    labelled = 0
    for community in hierarchy.communities:
        for member in community.members:
            if graph.has_node(member):
                graph.get_node(member).communities.add(community.label)
                labelled += 1

    logger.info(
        "Integrated %d communities into graph (%d labels attached)",
        hierarchy.total_communities, labelled,
    )
    return graph
