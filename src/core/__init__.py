"""Shared domain models and string utilities."""
