# src/rag/models.py — v1
"""Retrieval models: SearchOptions, SearchHit."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class SearchOptions(BaseModel):
    """Strategy switches and limits for full-text queries."""

    use_bigram: bool = True
    use_keywords: bool = True
    use_fuzzy: bool = True
    fuzzy_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_results: int = Field(default=20, ge=1)


class SearchHit(BaseModel):
    """One ranked full-text match (a node or an edge)."""

    doc_id: str
    doc_type: Literal["node", "edge"]
    text: str
    score: float = 0.0
    relevance: float = 0.0
    methods: list[str] = Field(default_factory=list)
    matched_terms: list[str] = Field(default_factory=list)
    similarity: float | None = None
    source: str | None = None
    target: str | None = None
