# src/core/similarity.py — v3
"""String similarity utilities for entity resolution and fuzzy search.

- levenshtein_distance: classic edit distance (two-row dynamic programming)
- edit_similarity: 1 - distance / max_len, in [0, 1]
- char_jaccard: Jaccard similarity of character sets
- is_similar_name: candidate heuristic used before oracle confirmation
"""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)

# Character Jaccard thresholds for the candidate heuristic.
JACCARD_THRESHOLD = 0.8
SHORT_NAME_JACCARD_THRESHOLD = 0.6
SHORT_NAME_LENGTH = 4


def levenshtein_distance(a: str, b: str) -> int:
    """Minimum number of single-character edits turning a into b."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    # Keep the inner loop over the shorter string.
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            ))
        previous = current
    return previous[-1]


def edit_similarity(a: str, b: str) -> float:
    """Normalized edit similarity in [0, 1]; 1.0 for two empty strings."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_len


def char_jaccard(a: str, b: str) -> float:
    """Jaccard similarity between the character sets of a and b."""
    set_a, set_b = set(a), set(b)
    union = set_a | set_b
    if not union:
        return 0.0
    return len(set_a & set_b) / len(union)


def is_similar_name(a: str, b: str) -> bool:
    """Return True when two entity names are plausible duplicates.

    Compared case-insensitively. A pair qualifies when its edit distance is at
    most half the length of the shorter name; otherwise the character-set
    Jaccard similarity must reach 0.8 (or exceed 0.6 when the longer name
    has fewer than 4 characters).
    """
    a_lower, b_lower = a.lower(), b.lower()
    if not a_lower or not b_lower:
        return False

    distance = levenshtein_distance(a_lower, b_lower)
    if distance <= min(len(a), len(b)) / 2:
        return True

    jaccard = char_jaccard(a_lower, b_lower)
    if max(len(a), len(b)) < SHORT_NAME_LENGTH:
        return jaccard > SHORT_NAME_JACCARD_THRESHOLD
    return jaccard >= JACCARD_THRESHOLD
