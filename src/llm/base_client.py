# src/llm/base_client.py — v2
"""Abstract LLM client interface for the resolution oracle and community reports.

Model invocation, retries and response caching belong to the concrete
client supplied by the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from kgweave.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Text completion."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (anthropic, openai, google, ollama)."""
