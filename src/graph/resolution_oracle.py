# src/graph/resolution_oracle.py — v1
"""Decision oracles confirming whether two same-typed names denote one entity.

The resolver only depends on the DecisionOracle protocol. LLMDecisionOracle is
the stock implementation: it numbers the pairs of a batch into a single
prompt and parses records of the form ``<|>3<|>yes<|>`` separated by ``##``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Sequence
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from kgweave.llm.models import Message

if TYPE_CHECKING:
    from kgweave.llm.base_client import BaseLLMClient

logger = logging.getLogger(__name__)

# (entity_type, name_a, name_b)
CandidatePair = tuple[str, str, str]

RECORD_DELIMITER = "##"

RESOLUTION_SYSTEM_PROMPT = (
    "You decide whether two entity names refer to the same real-world entity."
)

RESOLUTION_PROMPT = """-Goal-
For each question below, decide whether entity A and entity B are the same
real-world entity. Consider spelling variants, punctuation, transliterations
and abbreviations, but answer "no" when unsure.

-Output format-
One record per question, records separated by {delimiter}:
For question N answer yes:  (<|>N<|>yes<|>)
For question N answer no:   (<|>N<|>no<|>)

-Questions-
{questions}

Output:
"""

_INDEX_PATTERN = re.compile(r"<\|>\s*(\d+)\s*<\|>")
_DECISION_PATTERN = re.compile(r"<\|>\s*([a-zA-Z]+)\s*<\|>")


@runtime_checkable
class DecisionOracle(Protocol):
    """External "same entity?" judge; one boolean per pair, same order.

    ``confirm`` may be a plain or an ``async`` method.
    """

    def confirm(
        self, batch: list[CandidatePair]
    ) -> Sequence[bool] | Awaitable[Sequence[bool]]: ...


def format_questions(batch: list[CandidatePair]) -> str:
    """Render a batch as numbered questions (1-based)."""
    return "\n".join(
        f"Question {i}: name of {etype} A is {a}, name of {etype} B is {b}"
        for i, (etype, a, b) in enumerate(batch, start=1)
    )


def parse_resolution_response(text: str, num_pairs: int) -> list[bool]:
    """Turn an LLM answer into one decision per pair.

    Records that cannot be parsed, refer to an unknown question, or answer
    anything other than "yes" leave that pair at False.
    """
    decisions = [False] * num_pairs
    for record in text.split(RECORD_DELIMITER):
        index_match = _INDEX_PATTERN.search(record)
        decision_match = _DECISION_PATTERN.search(record)
        if not index_match or not decision_match:
            continue
        index = int(index_match.group(1))
        if 1 <= index <= num_pairs and decision_match.group(1).lower() == "yes":
            decisions[index - 1] = True
    return decisions


class LLMDecisionOracle:
    """DecisionOracle backed by a BaseLLMClient."""

    def __init__(
        self,
        client: BaseLLMClient,
        max_tokens: int = 2048,
        temperature: float = 0.0,
    ) -> None:
        self._client = client
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def confirm(self, batch: list[CandidatePair]) -> list[bool]:
        if not batch:
            return []
        prompt = RESOLUTION_PROMPT.format(
            delimiter=RECORD_DELIMITER,
            questions=format_questions(batch),
        )
        response = await self._client.complete(
            [Message(role="user", content=prompt)],
            system=RESOLUTION_SYSTEM_PROMPT,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        decisions = parse_resolution_response(response.content, len(batch))
        logger.debug(
            "Oracle batch of %d pairs via %s: %d confirmed",
            len(batch), self._client.provider_name, sum(decisions),
        )
        return decisions
