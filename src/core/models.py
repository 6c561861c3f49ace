# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
Graph records (GraphNode, GraphEdge) live here so that the builder, the
resolver, the community detector and the search index agree on one schema.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator, model_validator

# Separator used when several source descriptions are concatenated.
GRAPH_FIELD_SEP = "<SEP>"

# Bucket for nodes without a usable entity_type.
UNTYPED_ENTITY = "-"

_CONTROL_CHARS = re.compile(r"[\"\x00-\x1f\x7f-\x9f]")
_ANGLE_WRAPPED = re.compile(r"^<(.+)>$")


def clean_str(value: str) -> str:
    """Strip HTML escapes, control characters, quotes and angle brackets."""
    unescaped = (
        value.replace("&amp;", "&")
        .replace("&lt;", "<")
        .replace("&gt;", ">")
        .replace("&quot;", '"')
        .replace("&#39;", "'")
    )
    cleaned = _CONTROL_CHARS.sub("", unescaped).strip()
    cleaned = _ANGLE_WRAPPED.sub(r"\1", cleaned)
    return cleaned.replace("<", "").replace(">", "")


def normalize_node_id(name: str) -> str:
    """Canonical node identifier: cleaned entity name, uppercased."""
    return clean_str(name).upper()


# === GRAPH RECORDS ===


class GraphNode(BaseModel):
    """Entity node of the knowledge graph."""

    id: str
    entity_type: str = UNTYPED_ENTITY
    description: str = ""
    source_ids: set[str] = Field(default_factory=set)
    pagerank: float | None = None
    communities: set[str] = Field(default_factory=set)

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, v: str) -> str:
        normalized = normalize_node_id(v)
        if not normalized:
            raise ValueError("node id must not be empty")
        return normalized

    @field_validator("entity_type", mode="before")
    @classmethod
    def _default_type(cls, v: str | None) -> str:
        if v is None or not str(v).strip():
            return UNTYPED_ENTITY
        return str(v).strip()

    @field_validator("pagerank")
    @classmethod
    def _non_negative_rank(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError("pagerank must be >= 0")
        return v


class GraphEdge(BaseModel):
    """Undirected relationship; endpoints kept in canonical sorted order."""

    source: str
    target: str
    description: str = ""
    weight: float = 1.0
    keywords: set[str] = Field(default_factory=set)
    source_ids: set[str] = Field(default_factory=set)

    @model_validator(mode="after")
    def _canonical_order(self) -> GraphEdge:
        a, b = normalize_node_id(self.source), normalize_node_id(self.target)
        if b < a:
            a, b = b, a
        self.source = a
        self.target = b
        return self

    @field_validator("weight")
    @classmethod
    def _non_negative_weight(cls, v: float) -> float:
        if v < 0:
            raise ValueError("edge weight must be >= 0")
        return v

    @property
    def key(self) -> tuple[str, str]:
        return (self.source, self.target)


# === RAW EXTRACTION RECORDS ===


class RawEntity(BaseModel):
    """One entity mention as emitted by the extraction collaborator."""

    name: str
    entity_type: str = UNTYPED_ENTITY
    description: str = ""
    source_id: str | None = None


class RawRelationship(BaseModel):
    """One relationship mention as emitted by the extraction collaborator."""

    source: str
    target: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    weight: float = 1.0
    source_id: str | None = None

    @field_validator("keywords", mode="before")
    @classmethod
    def _split_keywords(cls, v: object) -> object:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [k.strip() for k in v.split(",") if k.strip()]
        return v
