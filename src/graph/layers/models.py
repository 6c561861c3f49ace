# src/graph/layers/models.py — v2
"""Community detection models: DetectionOptions, Community, CommunityHierarchy."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

DEFAULT_SEED = 0xDEADBEEF


class DetectionOptions(BaseModel):
    """Knobs of the hierarchical Leiden run."""

    use_largest_component: bool = True
    seed: int = Field(default=DEFAULT_SEED, ge=0, le=0xFFFFFFFF)
    max_levels: int = Field(default=3, ge=1)
    max_local_iterations: int = Field(default=10, ge=1)
    resolution: float = Field(default=1.0, gt=0)


class Community(BaseModel):
    """Single community at one hierarchy level."""

    community_id: str
    level: int
    members: list[str] = Field(default_factory=list)
    weight: float = 0.0
    parent_id: str | None = None
    children_ids: list[str] = Field(default_factory=list)
    chunk_coverage: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        """Label attached to member nodes, unique across levels."""
        return f"{self.level}:{self.community_id}"


class CommunityHierarchy(BaseModel):
    """Full hierarchical community structure from Leiden."""

    communities: list[Community] = Field(default_factory=list)
    num_levels: int = 0
    resolution: float = 1.0
    seed: int | None = None
    total_communities: int = 0
    modularity_by_level: dict[int, float] = Field(default_factory=dict)
    unassigned_nodes: list[str] = Field(default_factory=list)

    @property
    def modularity(self) -> float:
        """Modularity of the deepest level (0.0 when nothing was detected)."""
        if not self.modularity_by_level:
            return 0.0
        return self.modularity_by_level[max(self.modularity_by_level)]

    def at_level(self, level: int) -> list[Community]:
        return [c for c in self.communities if c.level == level]

    def level_map(self) -> dict[int, dict[str, dict[str, Any]]]:
        """``{level: {community_id: {"nodes": [...], "weight": w}}}``."""
        levels: dict[int, dict[str, dict[str, Any]]] = {}
        for c in self.communities:
            levels.setdefault(c.level, {})[c.community_id] = {
                "nodes": list(c.members),
                "weight": c.weight,
            }
        return levels
