# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for every tunable of the graph pipeline. Environment
variables use the field names upper-cased (e.g. ``COMMUNITY_SEED``).
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from kgweave.graph.layers.models import DetectionOptions
    from kgweave.rag.models import SearchOptions


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # === Community detection ===
    community_use_largest_component: bool = True
    community_seed: int = 0xDEADBEEF
    community_max_levels: int = 3
    community_max_local_iterations: int = 10
    community_resolution: float = 1.0

    # === Community reports ===
    community_reports_enabled: bool = False
    community_report_min_size: int = 2
    community_report_max_concurrency: int = 4
    community_report_max_tokens: int = 2048

    # === Entity resolution ===
    resolution_enabled: bool = True
    resolution_batch_size: int = 50
    resolution_max_concurrency: int = 4

    # === PageRank ===
    pagerank_alpha: float = 0.15

    # === Full-text search ===
    search_use_bigram: bool = True
    search_use_keywords: bool = True
    search_use_fuzzy: bool = True
    search_fuzzy_threshold: float = 0.7
    search_max_results: int = 20

    # --- Validators ---

    @field_validator(
        "community_max_levels",
        "community_max_local_iterations",
        "community_report_min_size",
        "community_report_max_concurrency",
        "community_report_max_tokens",
        "resolution_batch_size",
        "resolution_max_concurrency",
        "search_max_results",
    )
    @classmethod
    def validate_positive(cls, v: int, info) -> int:  # noqa: N805
        if v < 1:
            raise ValueError(f"{info.field_name} must be >= 1")
        return v

    @field_validator("log_retention")
    @classmethod
    def validate_retention(cls, v: int) -> int:  # noqa: N805
        if v < 0:
            raise ValueError("log_retention must be >= 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Cross-field consistency rules."""
        errors: list[str] = []

        if self.community_resolution <= 0:
            errors.append("COMMUNITY_RESOLUTION must be > 0")

        if not 0.0 < self.pagerank_alpha < 1.0:
            errors.append("PAGERANK_ALPHA must be in (0, 1)")

        if not 0.0 <= self.search_fuzzy_threshold <= 1.0:
            errors.append("SEARCH_FUZZY_THRESHOLD must be in [0, 1]")

        if not (
            self.search_use_bigram or self.search_use_keywords or self.search_use_fuzzy
        ):
            errors.append("At least one search strategy must be enabled")

        if self.log_file is not None:
            from kgweave.logging.handlers import _parse_size

            try:
                _parse_size(self.log_rotation)
            except ValueError as e:
                errors.append(f"LOG_ROTATION: {e}")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    def to_detection_options(self) -> DetectionOptions:
        """Community detector options from the community_* fields."""
        from kgweave.graph.layers.models import DetectionOptions

        return DetectionOptions(
            use_largest_component=self.community_use_largest_component,
            seed=self.community_seed,
            max_levels=self.community_max_levels,
            max_local_iterations=self.community_max_local_iterations,
            resolution=self.community_resolution,
        )

    def to_search_options(self) -> SearchOptions:
        """Full-text query options from the search_* fields."""
        from kgweave.rag.models import SearchOptions

        return SearchOptions(
            use_bigram=self.search_use_bigram,
            use_keywords=self.search_use_keywords,
            use_fuzzy=self.search_use_fuzzy,
            fuzzy_threshold=self.search_fuzzy_threshold,
            max_results=self.search_max_results,
        )


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-run config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
