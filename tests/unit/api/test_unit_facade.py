# tests/unit/api/test_unit_facade.py — v2
"""Tests for api/facade.py — public entry points and the end-to-end pipeline."""

from __future__ import annotations

import pytest

from kgweave.api.facade import (
    build_search_index,
    detect_communities,
    query,
    report_communities,
    resolve_entities,
    run_pipeline,
)
from kgweave.api.models import PipelineResult
from kgweave.config.settings import Settings
from kgweave.core.models import RawEntity, RawRelationship
from kgweave.graph.layers.models import Community, CommunityHierarchy
from kgweave.graph.model import GraphInvariantError, GraphModel
from kgweave.logging.context import get_context
from kgweave.rag.models import SearchOptions


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


class TestDetectCommunities:
    def test_level_map_and_labels(self, two_triangles):
        level_map = detect_communities(two_triangles)
        assert {frozenset(c["nodes"]) for c in level_map[0].values()} == {
            frozenset({"A", "B", "C"}),
            frozenset({"D", "E", "F"}),
        }
        assert "0:0" in two_triangles.get_node("A").communities

    def test_empty_graph(self):
        assert detect_communities(GraphModel()) == {}

    def test_largest_component(self, disconnected_graph):
        level_map = detect_communities(disconnected_graph)
        assert [c["nodes"] for c in level_map[0].values()] == [["A", "B"]]
        assert disconnected_graph.get_node("C").communities == set()


class TestResolveEntities:
    @pytest.mark.asyncio
    async def test_empty_graph_unchanged(self, yes_oracle):
        graph = GraphModel()
        assert await resolve_entities(graph, yes_oracle) is graph
        assert graph.number_of_nodes() == 0


class TestQuery:
    def test_combined_and_sequential(self, two_triangles):
        index = build_search_index(two_triangles)
        combined = query(index, "a description")
        sequential = query(index, "a description", sequential=True)
        assert combined
        assert sequential[0].methods == ["keyword"]
        assert any(len(h.methods) > 1 for h in combined)

    def test_options_forwarded(self, two_triangles):
        index = build_search_index(two_triangles)
        assert len(query(index, "description", SearchOptions(max_results=2))) == 2

    def test_settings_supply_default_options(self, two_triangles):
        index = build_search_index(two_triangles)
        settings = Settings(_env_file=None, search_max_results=3)
        assert len(query(index, "description", settings=settings)) == 3
        assert len(query(index, "description", sequential=True, settings=settings)) == 3

    def test_settings_disable_strategies(self, two_triangles):
        index = build_search_index(two_triangles)
        settings = Settings(_env_file=None, search_use_bigram=False, search_use_fuzzy=False)
        hits = query(index, "description", settings=settings)
        assert hits
        assert all(h.methods == ["keyword"] for h in hits)

    def test_explicit_options_win(self, two_triangles):
        index = build_search_index(two_triangles)
        settings = Settings(_env_file=None, search_max_results=3)
        assert len(query(index, "description", SearchOptions(max_results=1), settings=settings)) == 1


class TestRunPipeline:
    @pytest.mark.asyncio
    async def test_end_to_end(self, sample_entities, sample_relationships, yes_oracle, settings):
        messages: list[str] = []
        result = await run_pipeline(
            sample_entities, sample_relationships, yes_oracle,
            settings=settings, callback=messages.append,
        )
        assert isinstance(result, PipelineResult)
        assert result.graph.node_ids() == ["LIU BEI", "GUAN YU", "SHU HAN"]
        assert result.graph.get_node("LIU BEI").source_ids == {"c1", "c2"}
        assert result.graph.get_edge("LIU BEI", "SHU HAN").weight == 1.0
        assert result.resolution is not None
        assert result.stats["merged_clusters"] == 1
        assert result.pagerank_computed is True
        assert all(n.pagerank is not None for n in result.graph.nodes())
        assert result.communities == result.hierarchy.level_map()
        assert all(n.communities for n in result.graph.nodes())
        assert result.stats["index_document_count"] == 6
        assert messages[0] == "Built graph with 4 nodes and 3 edges."

    @pytest.mark.asyncio
    async def test_search_after_pipeline(self, sample_entities, sample_relationships, yes_oracle, settings):
        result = await run_pipeline(sample_entities, sample_relationships, yes_oracle, settings=settings)
        hits = query(result.index, "Shu", sequential=True)
        assert hits
        assert hits[0].methods == ["keyword"]

    @pytest.mark.asyncio
    async def test_without_oracle(self, sample_entities, sample_relationships, settings):
        result = await run_pipeline(sample_entities, sample_relationships, settings=settings)
        assert result.resolution is None
        assert result.graph.number_of_nodes() == 4

    @pytest.mark.asyncio
    async def test_resolution_disabled(self, sample_entities, sample_relationships, yes_oracle):
        settings = Settings(_env_file=None, resolution_enabled=False)
        result = await run_pipeline(sample_entities, sample_relationships, yes_oracle, settings=settings)
        assert result.resolution is None
        assert yes_oracle.batches == []

    @pytest.mark.asyncio
    async def test_empty_input(self, settings):
        result = await run_pipeline([], [], settings=settings)
        assert result.graph.number_of_nodes() == 0
        assert result.communities == {}
        assert result.index.get_stats()["document_count"] == 0

    @pytest.mark.asyncio
    async def test_dangling_relationship(self, settings):
        with pytest.raises(GraphInvariantError):
            await run_pipeline(
                [RawEntity(name="a")],
                [RawRelationship(source="a", target="ghost")],
                settings=settings,
            )
        assert get_context().as_dict() == {}

    @pytest.mark.asyncio
    async def test_context_cleared(self, sample_entities, sample_relationships, settings):
        result = await run_pipeline(sample_entities, sample_relationships, settings=settings)
        assert result.run_id
        assert get_context().run_id is None


class TestCommunityReports:
    @pytest.mark.asyncio
    async def test_reports_in_pipeline(
        self, sample_entities, sample_relationships, yes_oracle, report_llm_client,
    ):
        settings = Settings(_env_file=None, community_reports_enabled=True)
        messages: list[str] = []
        result = await run_pipeline(
            sample_entities, sample_relationships, yes_oracle,
            settings=settings, callback=messages.append, llm_client=report_llm_client,
        )
        assert result.community_reports
        assert all(len(r.entities) >= 2 for r in result.community_reports)
        assert result.stats["community_reports"] == len(result.community_reports)
        assert result.stats["failed_reports"] == 0
        assert report_llm_client.complete.await_count == len(result.community_reports)
        assert any(m.startswith("Successfully generated") for m in messages)

    @pytest.mark.asyncio
    async def test_disabled_by_default(
        self, sample_entities, sample_relationships, settings, report_llm_client,
    ):
        result = await run_pipeline(
            sample_entities, sample_relationships,
            settings=settings, llm_client=report_llm_client,
        )
        assert result.community_reports == []
        report_llm_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_enabled_without_client(self, sample_entities, sample_relationships):
        settings = Settings(_env_file=None, community_reports_enabled=True)
        result = await run_pipeline(sample_entities, sample_relationships, settings=settings)
        assert result.community_reports == []
        assert result.stats["community_reports"] == 0

    @pytest.mark.asyncio
    async def test_report_communities_uses_settings(self, two_triangles, report_llm_client):
        hierarchy = CommunityHierarchy(communities=[
            Community(community_id="0", level=0, members=["A", "B", "C"]),
            Community(community_id="1", level=0, members=["D", "E"]),
        ])
        settings = Settings(_env_file=None, community_report_min_size=3)
        result = await report_communities(
            two_triangles, hierarchy, report_llm_client, settings=settings,
        )
        assert [r.label for r in result.reports] == ["0:0"]
        assert result.skipped_small == 1
        kwargs = report_llm_client.complete.await_args.kwargs
        assert kwargs["max_tokens"] == settings.community_report_max_tokens
