"""Hierarchical community detection."""
