"""LLM client interface used by the resolution oracle."""
