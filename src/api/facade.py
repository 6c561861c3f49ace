# src/api/facade.py — v3
"""Public API facade — entry points for graph construction, clustering and search.

Usage:
    from kgweave.api.facade import run_pipeline
    result = await run_pipeline(entities, relationships, oracle)
    hits = query(result.index, "alpha")
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from kgweave.api.models import PipelineResult
from kgweave.config.settings import Settings
from kgweave.core.models import RawEntity, RawRelationship
from kgweave.graph import entity_resolver
from kgweave.graph.builder import build_graph_with_stats
from kgweave.graph.entity_resolver import ProgressCallback, run_entity_resolution
from kgweave.graph.layers import community_detector
from kgweave.graph.layers.community_integrator import integrate_communities
from kgweave.graph.layers.community_reporter import (
    ReportingResult,
    generate_community_reports,
)
from kgweave.graph.layers.models import CommunityHierarchy, DetectionOptions
from kgweave.graph.model import GraphModel
from kgweave.graph.pagerank import assign_pagerank
from kgweave.graph.resolution_oracle import DecisionOracle
from kgweave.logging.context import clear_context, set_run_context, set_stage_context
from kgweave.rag.models import SearchHit, SearchOptions
from kgweave.rag.retriever.fulltext_search import FullTextIndex

if TYPE_CHECKING:
    from kgweave.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)


def detect_communities(
    graph: GraphModel,
    options: DetectionOptions | None = None,
) -> dict[int, dict[str, dict[str, Any]]]:
    """Cluster the graph, label member nodes, and return the level map.

    Nodes outside the clustered component keep an empty ``communities`` set.
    """
    hierarchy = community_detector.detect_communities(graph, options)
    integrate_communities(graph, hierarchy)
    return hierarchy.level_map()


async def resolve_entities(
    graph: GraphModel,
    oracle: DecisionOracle,
    batch_size: int = entity_resolver.DEFAULT_BATCH_SIZE,
    max_concurrency: int = entity_resolver.DEFAULT_MAX_CONCURRENCY,
    callback: ProgressCallback | None = None,
) -> GraphModel:
    """Deduplicate same-typed entities in place; returns the same graph."""
    return await entity_resolver.resolve_entities(
        graph, oracle,
        batch_size=batch_size,
        max_concurrency=max_concurrency,
        callback=callback,
    )


async def report_communities(
    graph: GraphModel,
    hierarchy: CommunityHierarchy,
    llm_client: BaseLLMClient,
    settings: Settings | None = None,
    callback: ProgressCallback | None = None,
) -> ReportingResult:
    """LLM report for every community large enough, per the community_report_* settings."""
    settings = settings or Settings()
    return await generate_community_reports(
        graph, hierarchy, llm_client,
        min_size=settings.community_report_min_size,
        max_concurrency=settings.community_report_max_concurrency,
        max_tokens=settings.community_report_max_tokens,
        callback=callback,
    )


def build_search_index(graph: GraphModel) -> FullTextIndex:
    """Fresh full-text index over every node and edge of ``graph``."""
    return FullTextIndex().build_index(graph)


def query(
    index: FullTextIndex,
    text: str,
    options: SearchOptions | None = None,
    sequential: bool = False,
    settings: Settings | None = None,
) -> list[SearchHit]:
    """Run a combined (default) or sequential full-text query.

    Without explicit ``options`` the search_* settings apply (loaded from
    .env if ``settings`` is None).
    """
    if options is None:
        options = (settings or Settings()).to_search_options()
    if sequential:
        return index.search_sequentially(text, options)
    return index.search(text, options)


async def run_pipeline(
    entities: list[RawEntity],
    relationships: list[RawRelationship],
    oracle: DecisionOracle | None = None,
    settings: Settings | None = None,
    callback: ProgressCallback | None = None,
    llm_client: BaseLLMClient | None = None,
) -> PipelineResult:
    """Build, deduplicate, rank, cluster, report on and index a knowledge graph.

    Stages run strictly in order:
      1. build      raw records -> GraphModel
      2. resolve    entity resolution (skipped without an oracle or when
                    disabled in settings)
      3. pagerank   node importance, feeds community weights
      4. detect     hierarchical Leiden, labels attached to nodes
      5. report     LLM community reports (only with COMMUNITY_REPORTS_ENABLED
                    and an llm_client)
      6. index      full-text index over the final graph

    Args:
        entities: Extracted entity mentions.
        relationships: Extracted relationship mentions.
        oracle: Same-entity judge for stage 2.
        settings: Global settings. Loaded from .env if None.
        callback: Optional progress sink.
        llm_client: LLM client writing community reports in stage 5.

    Returns:
        PipelineResult holding the graph, hierarchy, reports, index and counters.

    Raises:
        GraphInvariantError: If a relationship references an unknown entity.
    """
    settings = settings or Settings()
    notify = callback or (lambda _msg: None)
    run_id = _generate_run_id()
    set_run_context(run_id)
    logger.info(
        "Starting pipeline: run_id=%s, %d entities, %d relationships",
        run_id, len(entities), len(relationships),
    )

    try:
        set_stage_context("build")
        graph, build_stats = build_graph_with_stats(entities, relationships)
        notify(f"Built graph with {graph.number_of_nodes()} nodes and "
               f"{graph.number_of_edges()} edges.")

        resolution = None
        if oracle is not None and settings.resolution_enabled:
            set_stage_context("resolve")
            resolution = await run_entity_resolution(
                graph, oracle,
                batch_size=settings.resolution_batch_size,
                max_concurrency=settings.resolution_max_concurrency,
                callback=callback,
            )
        else:
            logger.info("Entity resolution skipped")

        set_stage_context("pagerank")
        pagerank_computed = assign_pagerank(graph, alpha=settings.pagerank_alpha)

        set_stage_context("detect")
        hierarchy = community_detector.detect_communities(
            graph, settings.to_detection_options()
        )
        integrate_communities(graph, hierarchy)
        notify(f"Detected {hierarchy.total_communities} communities over "
               f"{hierarchy.num_levels} levels.")

        reporting = ReportingResult()
        if settings.community_reports_enabled and llm_client is not None:
            set_stage_context("report")
            reporting = await report_communities(
                graph, hierarchy, llm_client, settings=settings, callback=callback,
            )
        elif settings.community_reports_enabled:
            logger.warning("Community reports enabled but no LLM client given; skipped")
        else:
            logger.info("Community reports skipped")

        set_stage_context("index")
        index = build_search_index(graph)

        result = PipelineResult(
            run_id=run_id,
            graph=graph,
            hierarchy=hierarchy,
            index=index,
            build_stats=build_stats,
            resolution=resolution,
            pagerank_computed=pagerank_computed,
            community_reports=reporting.reports,
            stats={
                "nodes": graph.number_of_nodes(),
                "edges": graph.number_of_edges(),
                "levels": hierarchy.num_levels,
                "communities": hierarchy.total_communities,
                "modularity": hierarchy.modularity,
                "unassigned_nodes": len(hierarchy.unassigned_nodes),
                "merged_clusters": len(resolution.merged_clusters) if resolution else 0,
                "community_reports": len(reporting.reports),
                "failed_reports": reporting.failed,
                **{f"index_{k}": v for k, v in index.get_stats().items()},
            },
        )
        logger.info("Pipeline complete: run_id=%s, stats=%s", run_id, result.stats)
        return result
    finally:
        clear_context()


def _generate_run_id() -> str:
    """Generate a run ID: yyyymmdd_hhmmss_{uuid4_short}."""
    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    return f"{ts}_{uuid.uuid4().hex[:8]}"
