# src/rag/retriever/fulltext_search.py — v1
"""Full-text retriever over graph nodes and edges.

Indexes every node as ``"<id> <description>"`` and every edge as
``"<source> <target> <description>"`` into three inverted indices:

- bigram: every 2-character window without whitespace
- keyword: whitespace tokens of length >= 2 plus single CJK characters
- trigram: built for future strategies, not consulted by search

Two query strategies:
- search: blends bigram (x0.4) and keyword (x0.6) relevance, topping up
  with fuzzy matches (x0.3) when fewer than 10 documents were hit.
- search_sequentially: keyword, then bigram, then fuzzy; the first strategy
  with any hit wins and scores are never blended.

Ranking is descending by score; ties keep index insertion order, so results
are reproducible for a fixed index and query.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from kgweave.core.similarity import edit_similarity
from kgweave.graph.model import GraphModel
from kgweave.rag.models import SearchHit, SearchOptions

logger = logging.getLogger(__name__)

BIGRAM_WEIGHT = 0.4
KEYWORD_WEIGHT = 0.6
FUZZY_WEIGHT = 0.3
# Combined search runs fuzzy matching only below this many hits.
FUZZY_TRIGGER_HITS = 10
MIN_KEYWORD_LENGTH = 2

_CJK_CHAR = re.compile(r"[一-鿿]")
_NON_WORD = re.compile(r"[^一-鿿\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """Case-fold, turn punctuation into spaces, collapse whitespace."""
    text = _NON_WORD.sub(" ", text.casefold())
    return _WHITESPACE.sub(" ", text).strip()


def generate_bigrams(text: str) -> list[str]:
    """All 2-character windows containing no whitespace (duplicates kept)."""
    return [
        text[i:i + 2]
        for i in range(len(text) - 1)
        if len(text[i:i + 2].strip()) == 2
    ]


def generate_trigrams(text: str) -> list[str]:
    """All 3-character windows without leading or trailing whitespace."""
    return [
        text[i:i + 3]
        for i in range(len(text) - 2)
        if len(text[i:i + 3].strip()) == 3
    ]


def extract_keywords(text: str) -> list[str]:
    """Distinct tokens of length >= 2, then every distinct CJK character."""
    words = [w for w in text.split() if len(w) >= MIN_KEYWORD_LENGTH]
    words.extend(_CJK_CHAR.findall(text))
    return list(dict.fromkeys(words))


@dataclass
class IndexedDocument:
    """A node or edge as stored in the indices."""

    doc_id: str
    doc_type: str
    text: str
    source: str | None = None
    target: str | None = None

    @property
    def key(self) -> str:
        return f"{self.doc_type}:{self.doc_id}"

    def to_hit(self, **fields) -> SearchHit:
        return SearchHit(
            doc_id=self.doc_id,
            doc_type=self.doc_type,
            text=self.text,
            source=self.source,
            target=self.target,
            **fields,
        )


class FullTextIndex:
    """Bigram / trigram / keyword inverted indices plus fuzzy matching."""

    def __init__(self) -> None:
        self._documents: dict[str, IndexedDocument] = {}
        self._bigram_index: dict[str, dict[str, None]] = {}
        self._trigram_index: dict[str, dict[str, None]] = {}
        self._keyword_index: dict[str, dict[str, None]] = {}

    # --- Indexing ---

    def build_index(self, graph: GraphModel) -> FullTextIndex:
        """Clear every index and re-index all nodes and edges of ``graph``."""
        self.clear()
        for node in graph.nodes():
            self.add_document(f"{node.id} {node.description}", node.id, "node")
        for edge in graph.edges():
            self.add_document(
                f"{edge.source} {edge.target} {edge.description}",
                edge_doc_id(edge.source, edge.target),
                "edge",
                source=edge.source,
                target=edge.target,
            )
        logger.info(
            "Full-text index built: %d nodes, %d edges, %d bigrams, %d keywords",
            graph.number_of_nodes(),
            graph.number_of_edges(),
            len(self._bigram_index),
            len(self._keyword_index),
        )
        return self

    def add_document(
        self,
        text: str,
        doc_id: str,
        doc_type: str = "node",
        source: str | None = None,
        target: str | None = None,
    ) -> None:
        doc = IndexedDocument(
            doc_id=doc_id,
            doc_type=doc_type,
            text=normalize_text(text),
            source=source,
            target=target,
        )
        self._documents[doc.key] = doc
        for gram in generate_bigrams(doc.text):
            self._bigram_index.setdefault(gram, {})[doc.key] = None
        for gram in generate_trigrams(doc.text):
            self._trigram_index.setdefault(gram, {})[doc.key] = None
        for word in extract_keywords(doc.text):
            self._keyword_index.setdefault(word, {})[doc.key] = None

    def clear(self) -> None:
        self._documents.clear()
        self._bigram_index.clear()
        self._trigram_index.clear()
        self._keyword_index.clear()

    def get_stats(self) -> dict[str, int]:
        return {
            "bigram_count": len(self._bigram_index),
            "trigram_count": len(self._trigram_index),
            "keyword_count": len(self._keyword_index),
            "document_count": len(self._documents),
        }

    # --- Single strategies ---

    def search_by_bigram(self, query: str) -> list[SearchHit]:
        """Each matched query bigram adds 1/len(query bigrams) to a document."""
        terms = generate_bigrams(normalize_text(query))
        return self._lookup(terms, self._bigram_index)

    def search_by_keywords(self, query: str) -> list[SearchHit]:
        """Each matched query keyword adds 1/len(query keywords) to a document."""
        terms = extract_keywords(normalize_text(query))
        return self._lookup(terms, self._keyword_index)

    def fuzzy_search(self, query: str, threshold: float = 0.7) -> list[SearchHit]:
        """Edit similarity of the query against every distinct indexed text."""
        normalized = normalize_text(query)
        if not normalized:
            return []
        hits: list[SearchHit] = []
        for doc in self._documents.values():
            similarity = edit_similarity(normalized, doc.text)
            if similarity >= threshold:
                hits.append(doc.to_hit(
                    score=similarity, relevance=similarity, similarity=similarity,
                ))
        hits.sort(key=lambda h: h.similarity, reverse=True)
        return hits

    def _lookup(self, terms: list[str], index: dict[str, dict[str, None]]) -> list[SearchHit]:
        if not terms:
            return []
        counts: dict[str, int] = {}
        matched: dict[str, list[str]] = {}
        for term in terms:
            for key in index.get(term, {}):
                counts[key] = counts.get(key, 0) + 1
                matched.setdefault(key, []).append(term)

        hits = [
            self._documents[key].to_hit(
                score=count, relevance=count / len(terms), matched_terms=matched[key],
            )
            for key, count in counts.items()
        ]
        hits.sort(key=lambda h: h.score, reverse=True)
        for hit in hits:
            hit.score = hit.relevance
        return hits

    # --- Combined strategies ---

    def search(self, query: str, options: SearchOptions | None = None) -> list[SearchHit]:
        """Blended bigram + keyword ranking, topped up with fuzzy matches."""
        options = options or SearchOptions()
        combined: dict[str, SearchHit] = {}

        def _accumulate(hits: list[SearchHit], weight: float, method: str) -> None:
            for hit in hits:
                key = f"{hit.doc_type}:{hit.doc_id}"
                entry = combined.get(key)
                if entry is None:
                    entry = hit.model_copy(update={
                        "score": 0.0, "relevance": 0.0, "methods": [], "matched_terms": [],
                    })
                    combined[key] = entry
                contribution = (hit.similarity if method == "fuzzy" else hit.relevance) or 0.0
                entry.score += contribution * weight
                entry.relevance = entry.score
                entry.methods.append(method)
                entry.matched_terms.extend(hit.matched_terms)
                if hit.similarity is not None:
                    entry.similarity = hit.similarity

        if options.use_bigram:
            _accumulate(self.search_by_bigram(query), BIGRAM_WEIGHT, "bigram")
        if options.use_keywords:
            _accumulate(self.search_by_keywords(query), KEYWORD_WEIGHT, "keyword")
        if options.use_fuzzy and len(combined) < FUZZY_TRIGGER_HITS:
            _accumulate(
                self.fuzzy_search(query, options.fuzzy_threshold), FUZZY_WEIGHT, "fuzzy"
            )

        ranked = sorted(combined.values(), key=lambda h: h.score, reverse=True)
        return ranked[:options.max_results]

    def search_sequentially(
        self,
        query: str,
        options: SearchOptions | None = None,
    ) -> list[SearchHit]:
        """First non-empty strategy among keyword, bigram and fuzzy wins."""
        options = options or SearchOptions()
        strategies = [
            (options.use_keywords, "keyword", lambda: self.search_by_keywords(query)),
            (options.use_bigram, "bigram", lambda: self.search_by_bigram(query)),
            (
                options.use_fuzzy,
                "fuzzy",
                lambda: self.fuzzy_search(query, options.fuzzy_threshold),
            ),
        ]
        for enabled, method, run in strategies:
            if not enabled:
                continue
            hits = run()
            if hits:
                logger.debug("Sequential search %r: %d %s hits", query, len(hits), method)
                return [
                    h.model_copy(update={"score": h.relevance, "methods": [method]})
                    for h in hits[:options.max_results]
                ]
            logger.debug("Sequential search %r: no %s hits", query, method)
        return []


def edge_doc_id(source: str, target: str) -> str:
    """Document id of an edge in the index."""
    return f"{source}|{target}"
