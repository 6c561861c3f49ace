# tests/conftest.py — v2
"""Shared test fixtures for all unit tests.

Provides small reference graphs, raw extraction records and fake decision
oracles. No external dependencies: every LLM call is mocked.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from kgweave.core.models import GraphEdge, GraphNode, RawEntity, RawRelationship
from kgweave.graph.model import GraphModel
from kgweave.llm.models import LLMResponse


def make_graph(
    nodes: list[str] | list[tuple[str, str]],
    edges: list[tuple[str, str, float]] = (),
) -> GraphModel:
    """GraphModel from ids (or (id, type) pairs) and (a, b, weight) triples."""
    graph = GraphModel()
    for item in nodes:
        node_id, etype = (item, "-") if isinstance(item, str) else item
        graph.add_node(GraphNode(
            id=node_id,
            entity_type=etype,
            description=f"{node_id} description",
            source_ids={f"chunk-{node_id.lower()}"},
        ))
    for a, b, w in edges:
        graph.add_edge(GraphEdge(source=a, target=b, weight=w, description=f"{a} and {b}"))
    return graph


class FakeOracle:
    """Synchronous oracle answering from a fixed set of matching pairs."""

    def __init__(self, matches: set[frozenset[str]] | None = None, answer_all: bool | None = None):
        self.matches = matches or set()
        self.answer_all = answer_all
        self.batches: list[list[tuple[str, str, str]]] = []

    def confirm(self, batch):
        self.batches.append(list(batch))
        if self.answer_all is not None:
            return [self.answer_all] * len(batch)
        return [frozenset((a, b)) in self.matches for _t, a, b in batch]


class AsyncFakeOracle(FakeOracle):
    """Same as FakeOracle with an ``async`` confirm."""

    async def confirm(self, batch):
        return FakeOracle.confirm(self, batch)


# === FIXTURES: Graphs ===


@pytest.fixture
def two_triangles() -> GraphModel:
    """A-B-C and D-E-F chains (weight 2) joined by a weak C-D bridge."""
    return make_graph(
        ["A", "B", "C", "D", "E", "F"],
        [("A", "B", 2), ("B", "C", 2), ("D", "E", 2), ("E", "F", 2), ("C", "D", 1)],
    )


@pytest.fixture
def disconnected_graph() -> GraphModel:
    """Four nodes, one edge A-B; C and D isolated."""
    return make_graph(["A", "B", "C", "D"], [("A", "B", 1)])


@pytest.fixture
def sample_entities() -> list[RawEntity]:
    return [
        RawEntity(name="Liu Bei", entity_type="person", description="Lord of Shu", source_id="c1"),
        RawEntity(name="Liu-Bei", entity_type="PERSON", description="Founder of Shu Han", source_id="c2"),
        RawEntity(name="Guan Yu", entity_type="person", description="Sworn brother", source_id="c1"),
        RawEntity(name="Shu Han", entity_type="organization", description="Kingdom", source_id="c2"),
    ]


@pytest.fixture
def sample_relationships() -> list[RawRelationship]:
    return [
        RawRelationship(source="Liu Bei", target="Guan Yu", description="sworn brothers",
                        keywords="oath,brotherhood", weight=2.0, source_id="c1"),
        RawRelationship(source="Liu-Bei", target="Shu Han", description="founded",
                        weight=1.0, source_id="c2"),
        RawRelationship(source="Guan Yu", target="Shu Han", description="general of",
                        weight=1.0, source_id="c2"),
    ]


# === FIXTURES: Oracles / LLM ===


@pytest.fixture
def yes_oracle() -> FakeOracle:
    return FakeOracle(answer_all=True)


@pytest.fixture
def no_oracle() -> FakeOracle:
    return FakeOracle(answer_all=False)


@pytest.fixture
def mock_llm_client():
    """Mock BaseLLMClient returning a canned resolution answer."""
    client = AsyncMock()
    client.provider_name = "mock"
    client.complete = AsyncMock(return_value=LLMResponse(
        content="(<|>1<|>yes<|>)##(<|>2<|>no<|>)",
        input_tokens=100,
        output_tokens=20,
        model="mock-model",
        provider="mock",
    ))
    return client


VALID_REPORT = """```json
{
    "title": "Shu Han founders",
    "summary": "Sworn brothers who founded a kingdom.",
    "rating": 7.5,
    "rating_explanation": "The group rules a kingdom.",
    "findings": [
        {"summary": "Brotherhood", "explanation": "Liu Bei and Guan Yu swore an oath."},
    ],
}
```"""


@pytest.fixture
def report_llm_client():
    """Mock BaseLLMClient answering every prompt with a valid community report."""
    client = AsyncMock()
    client.provider_name = "mock"
    client.complete = AsyncMock(return_value=LLMResponse(
        content=VALID_REPORT,
        input_tokens=300,
        output_tokens=80,
        model="mock-model",
        provider="mock",
    ))
    return client


# === FIXTURES: Factories ===


@pytest.fixture
def graph_factory():
    """The make_graph helper, for tests building their own graphs."""
    return make_graph


@pytest.fixture
def oracle_factory():
    """FakeOracle class (sync confirm)."""
    return FakeOracle


@pytest.fixture
def async_oracle_factory():
    """AsyncFakeOracle class (async confirm)."""
    return AsyncFakeOracle
