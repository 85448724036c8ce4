"""TF-IDF keyword index used as the bundled similarity backend.

Scores documents by relevance using term frequency-inverse document frequency
on a name field and a body field. Uses only the standard library.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Iterable, Optional

# Common English stopwords
_STOPWORDS = frozenset({
    "a", "an", "the", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "from", "is", "are", "was", "were", "be", "been",
    "this", "that", "it", "its", "as", "if", "not", "no", "do", "does",
    "can", "will", "has", "have", "had", "may", "might", "should", "would",
    "all", "each", "every", "any", "some", "my", "me", "i", "we", "our",
})

# Name token weight multiplier (name matches are 2x more important than body)
_NAME_WEIGHT = 2.0


def tokenize(text: str) -> list[str]:
    """Tokenize text into lowercase words, splitting on _ and non-alpha."""
    words = re.split(r"[_\W]+", (text or "").lower())
    return [w for w in words if w and w not in _STOPWORDS and len(w) > 1]


class TfidfIndex:
    """TF-IDF index over documents with a weighted name field and a body field."""

    def __init__(self) -> None:
        # Per-document token lists: {key: {"name_tokens": [...], "body_tokens": [...]}}
        self._doc_tokens: dict[str, dict[str, list[str]]] = {}
        # IDF scores: {term: idf_score}
        self._idf: dict[str, float] = {}
        self._num_docs: int = 0

    def __len__(self) -> int:
        return self._num_docs

    def rebuild(self, documents: dict[str, tuple[str, str]]) -> None:
        """Rebuild the index from {key: (name_text, body_text)}."""
        self._doc_tokens.clear()
        self._idf.clear()
        self._num_docs = len(documents)

        if not documents:
            return

        doc_freq: Counter = Counter()
        for key, (name_text, body_text) in documents.items():
            name_tokens = tokenize(name_text)
            body_tokens = tokenize(body_text)
            self._doc_tokens[key] = {
                "name_tokens": name_tokens,
                "body_tokens": body_tokens,
            }
            # Document frequency: count unique terms per document
            for term in set(name_tokens) | set(body_tokens):
                doc_freq[term] += 1

        # IDF: log(N / df)
        for term, df in doc_freq.items():
            self._idf[term] = math.log((self._num_docs + 1) / (df + 1)) + 1.0

    def score(self, query_tokens: list[str], key: str) -> float:
        tokens = self._doc_tokens.get(key)
        if tokens is None or not query_tokens:
            return 0.0
        name_score = self._score_tokens(query_tokens, tokens["name_tokens"])
        body_score = self._score_tokens(query_tokens, tokens["body_tokens"])
        return (_NAME_WEIGHT * name_score + body_score) / (_NAME_WEIGHT + 1.0)

    def search(
        self,
        query: str,
        top_k: int,
        min_score: float = 0.0,
        keys: Optional[Iterable[str]] = None,
    ) -> list[tuple[str, float]]:
        """Score documents against the query, best first, dropping zero scores."""
        query_tokens = tokenize(query)
        if not query_tokens or top_k <= 0:
            return []

        pool = self._doc_tokens.keys() if keys is None else keys
        scored = []
        for key in pool:
            s = self.score(query_tokens, key)
            if s > 0.0 and s >= min_score:
                scored.append((key, s))

        scored.sort(key=lambda pair: (pair[1], pair[0]), reverse=True)
        return scored[:top_k]

    def _score_tokens(self, query_tokens: list[str], doc_tokens: list[str]) -> float:
        """Compute TF-IDF similarity between query and document tokens."""
        if not doc_tokens or not query_tokens:
            return 0.0

        doc_tf = Counter(doc_tokens)
        # Dampened length normalization so short names are not over-rewarded
        doc_len = math.sqrt(len(doc_tokens))

        score = 0.0
        for qt in set(query_tokens):
            if qt in doc_tf:
                tf = min(doc_tf[qt] / doc_len, 1.0)
                idf = self._idf.get(qt, 1.0)
                score += tf * idf

        # Normalize by query length
        max_possible = sum(self._idf.get(qt, 1.0) for qt in set(query_tokens))
        if max_possible > 0:
            score /= max_possible

        return min(score, 1.0)
