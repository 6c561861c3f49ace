# src/graph/layers/community_reporter.py — v1
"""Community reporter — LLM-written report per detected community.

Each community with at least ``min_size`` members is shown to the LLM as two
CSV-like tables (its entities, and the relationships between them). The JSON
answer is checked against CommunityReport. Answers that cannot be parsed or
fail validation are counted and dropped; they never abort the run.

Runs after community detection + integration, so PageRank-based community
weights are already known.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

from kgweave.graph.layers.models import Community, CommunityHierarchy
from kgweave.graph.model import GraphModel
from kgweave.llm.models import Message

if TYPE_CHECKING:
    from kgweave.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIZE = 2
DEFAULT_MAX_CONCURRENCY = 4

REPORT_SYSTEM_PROMPT = (
    "You are a knowledge graph analyst. Respond only with valid JSON."
)

REPORT_PROMPT = """# Goal
Write a report about a community of entities, given the entities that belong
to it and the relationships between them. The report informs decision-makers
about the community and its potential impact.

# Report structure
- title: a short, specific name built from the community's key entities.
- summary: an executive summary of the community's structure and how its
  entities relate to each other.
- rating: a float from 0 to 10 for the impact severity of the community
  (0 = no impact, 5 = moderate, 10 = severe).
- rating_explanation: one sentence justifying the rating.
- findings: 5 to 10 key insights, each citing concrete entities or
  relationships from the tables below.

Return a single JSON object, written in the language of the data:
{{
    "title": "<report_title>",
    "summary": "<executive_summary>",
    "rating": <impact_severity_rating>,
    "rating_explanation": "<rating_explanation>",
    "findings": [
        {{"summary": "<insight_summary>", "explanation": "<insight_explanation>"}}
    ]
}}

# Data
Use only the data below. Do not invent facts.

-Entities-
{entities}

-Relationships-
{relationships}

Output:
"""

_TRAILING_COMMA = re.compile(r",(\s*[}\]])")


class ReportFinding(BaseModel):
    """One insight of a community report."""

    summary: str = Field(min_length=1)
    explanation: str = Field(min_length=1)


class CommunityReport(BaseModel):
    """Validated LLM report for a single community."""

    community_id: str
    level: int
    title: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    rating: float = Field(ge=0.0, le=10.0)
    rating_explanation: str = Field(min_length=1)
    findings: list[ReportFinding] = Field(min_length=1)
    weight: float = 0.0
    entities: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        """Same ``"level:id"`` label the community puts on its nodes."""
        return f"{self.level}:{self.community_id}"

    def to_markdown(self) -> str:
        sections = [f"# {self.title}", self.summary]
        sections.extend(f"## {f.summary}\n\n{f.explanation}" for f in self.findings)
        return "\n\n".join(sections)


@dataclass
class ReportingResult:
    """Reports plus counters of one reporting run."""

    reports: list[CommunityReport] = field(default_factory=list)
    skipped_small: int = 0
    skipped_duplicate: int = 0
    failed: int = 0
    llm_calls: int = 0
    tokens_used: int = 0


def format_community_tables(graph: GraphModel, community: Community) -> tuple[str, str]:
    """Entity and relationship tables of a community, in member order."""
    members = [m for m in community.members if graph.has_node(m)]
    position = {m: i for i, m in enumerate(members)}

    entity_rows = ["id,entity,description"]
    for i, member in enumerate(members):
        entity_rows.append(f'{i},{member},"{graph.get_node(member).description}"')

    relation_rows = ["id,source,target,description"]
    for member in members:
        later = sorted(
            (n for n in graph.neighbors(member) if position.get(n, -1) > position[member]),
            key=position.__getitem__,
        )
        for other in later:
            edge = graph.get_edge(member, other)
            relation_rows.append(
                f'{len(relation_rows) - 1},{member},{other},"{edge.description}"'
            )

    return "\n".join(entity_rows), "\n".join(relation_rows)


def build_report_prompt(graph: GraphModel, community: Community) -> str:
    entities, relationships = format_community_tables(graph, community)
    return REPORT_PROMPT.format(entities=entities, relationships=relationships)


def parse_report_response(content: str) -> dict[str, Any]:
    """Extract the JSON object from an LLM answer.

    Markdown fences, text around the outermost braces and trailing commas
    are tolerated.

    Raises:
        ValueError: If no JSON object can be decoded.
    """
    text = content.strip()
    if text.startswith("```"):
        lines = [ln for ln in text.split("\n") if not ln.strip().startswith("```")]
        text = "\n".join(lines)
    start, end = text.find("{"), text.rfind("}")
    if start >= 0 and end > start:
        text = text[start:end + 1]
    text = _TRAILING_COMMA.sub(r"\1", text)
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def select_communities(
    hierarchy: CommunityHierarchy,
    min_size: int = DEFAULT_MIN_SIZE,
) -> tuple[list[Community], int, int]:
    """Communities worth a report, plus (too small, duplicate) counts.

    A community whose member set was already selected at a lower level is
    a duplicate: the deepest level can repeat the previous partition.
    """
    selected: list[Community] = []
    seen: set[frozenset[str]] = set()
    small = duplicate = 0
    for community in hierarchy.communities:
        if len(community.members) < min_size:
            small += 1
            continue
        members = frozenset(community.members)
        if members in seen:
            duplicate += 1
            continue
        seen.add(members)
        selected.append(community)
    return selected, small, duplicate


async def generate_community_reports(
    graph: GraphModel,
    hierarchy: CommunityHierarchy,
    client: BaseLLMClient,
    min_size: int = DEFAULT_MIN_SIZE,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    max_tokens: int = 2048,
    temperature: float = 0.3,
    callback: Callable[[str], None] | None = None,
) -> ReportingResult:
    """Ask the LLM for one report per community with ``min_size``+ members.

    Args:
        graph: Graph the hierarchy was detected on.
        hierarchy: Detected communities.
        client: LLM client writing the reports.
        min_size: Smallest community that gets a report.
        max_concurrency: LLM calls allowed in flight at once.
        max_tokens: Completion budget per report.
        temperature: Sampling temperature.
        callback: Optional progress sink receiving human-readable messages.

    Returns:
        ReportingResult with reports in hierarchy order and skip/failure counts.
    """
    notify = callback or (lambda _msg: None)
    communities, small, duplicate = select_communities(hierarchy, min_size)
    result = ReportingResult(skipped_small=small, skipped_duplicate=duplicate)
    if not communities:
        logger.info("Community reports: nothing to report (%d too small)", small)
        return result

    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _complete(community: Community) -> Any:
        async with semaphore:
            return await client.complete(
                messages=[Message(role="user", content=build_report_prompt(graph, community))],
                system=REPORT_SYSTEM_PROMPT,
                max_tokens=max_tokens,
                temperature=temperature,
            )

    responses = await asyncio.gather(
        *(_complete(c) for c in communities), return_exceptions=True
    )

    for community, response in zip(communities, responses):
        if isinstance(response, Exception):
            result.failed += 1
            logger.warning("Report for community %s failed: %s", community.label, response)
            notify(f"ERROR: community report {community.label} failed: {response}")
            continue
        result.llm_calls += 1
        result.tokens_used += response.input_tokens + response.output_tokens
        try:
            parsed = parse_report_response(response.content)
            report = CommunityReport.model_validate({
                **parsed,
                "community_id": community.community_id,
                "level": community.level,
                "weight": community.weight,
                "entities": list(community.members),
            })
        except (ValueError, ValidationError) as e:
            result.failed += 1
            logger.warning(
                "Unusable report for community %s: %s", community.label, e
            )
            notify(f"ERROR: community report {community.label} rejected: {e}")
            continue
        result.reports.append(report)

    notify(f"Successfully generated {len(result.reports)} community reports.")
    logger.info(
        "Community reports: %d generated, %d failed, %d too small, %d duplicates",
        len(result.reports), result.failed, result.skipped_small, result.skipped_duplicate,
    )
    return result
