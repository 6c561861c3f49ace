# src/api/models.py — v2
"""API-level models: PipelineResult."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kgweave.graph.builder import BuildStats
from kgweave.graph.entity_resolver import ResolutionResult
from kgweave.graph.layers.community_reporter import CommunityReport
from kgweave.graph.layers.models import CommunityHierarchy
from kgweave.graph.model import GraphModel
from kgweave.rag.retriever.fulltext_search import FullTextIndex


@dataclass
class PipelineResult:
    """Return value of facade.run_pipeline()."""

    run_id: str
    graph: GraphModel
    hierarchy: CommunityHierarchy
    index: FullTextIndex
    build_stats: BuildStats
    resolution: ResolutionResult | None = None
    pagerank_computed: bool = False
    community_reports: list[CommunityReport] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def communities(self) -> dict[int, dict[str, dict[str, Any]]]:
        """Level map ``{level: {community_id: {"nodes", "weight"}}}``."""
        return self.hierarchy.level_map()
