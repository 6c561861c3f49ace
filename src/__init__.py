# src/__init__.py — v1
"""kgweave: knowledge graph construction, entity resolution, community detection and full-text search."""

__version__ = "0.1.0"
