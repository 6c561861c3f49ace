"""Retrieval models and retrievers."""
