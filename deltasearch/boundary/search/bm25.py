"""
Deterministic weighted BM25 ranking over segment documents.

Field weights multiply term frequencies; ties are broken by document id so
result order is stable across runs.

Dependencies: math, re (stdlib)
System role: Full-text scoring for merged segment search
"""

import math
import re
from collections import Counter
from dataclasses import dataclass, field

TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)
BM25_K1 = 1.2
BM25_B = 0.75


def tokenize(text: str) -> list[str]:
    """Tokenize into deterministic lowercase word terms."""
    return [match.group(0).lower() for match in TOKEN_PATTERN.finditer(text)]


@dataclass(slots=True, frozen=True)
class RankedHit:
    """Typed BM25 hit."""

    doc_id: str
    score: float
    matched_terms: tuple[str, ...]


@dataclass(slots=True)
class _Entry:
    doc_id: str
    term_freqs: Counter[str]
    length: float


@dataclass(slots=True)
class RankedCorpus:
    """
    Pre-tokenized corpus for repeated queries.

    Term frequency is weighted per field: a term occurring once in a field
    of weight 2.0 counts as 2.0 occurrences.
    """

    entries: list[_Entry] = field(default_factory=list)
    doc_freq: Counter[str] = field(default_factory=Counter)
    avgdl: float = 0.0

    @classmethod
    def build(
        cls,
        documents: list[tuple[str, dict[str, str]]],
        field_weights: dict[str, float],
    ) -> "RankedCorpus":
        corpus = cls()
        total_len = 0.0
        for doc_id, fields in documents:
            weighted: Counter[str] = Counter()
            length = 0.0
            for name, text in fields.items():
                weight = field_weights.get(name, 1.0)
                for term in tokenize(text):
                    weighted[term] += weight
                    length += weight
            corpus.entries.append(_Entry(doc_id=doc_id, term_freqs=weighted, length=length))
            corpus.doc_freq.update(weighted.keys())
            total_len += length
        if corpus.entries:
            corpus.avgdl = total_len / len(corpus.entries)
        return corpus

    def __len__(self) -> int:
        return len(self.entries)

    def search(self, query: str, allowed: set[str] | None = None) -> list[RankedHit]:
        """
        Return all matching hits ranked by score, ties broken by id.

        Args:
            query: Free text query
            allowed: Optional id whitelist (attribute filter result)

        Returns:
            list[RankedHit]: Hits with positive score
        """
        terms = sorted(set(tokenize(query)))
        if not terms or not self.entries or self.avgdl <= 0:
            return []

        total_docs = len(self.entries)
        scored: list[RankedHit] = []
        for entry in self.entries:
            if allowed is not None and entry.doc_id not in allowed:
                continue
            score = 0.0
            matched: list[str] = []
            for term in terms:
                tf = entry.term_freqs.get(term, 0.0)
                if tf == 0:
                    continue
                matched.append(term)
                n_qi = self.doc_freq.get(term, 0)
                idf = math.log(1.0 + ((total_docs - n_qi + 0.5) / (n_qi + 0.5)))
                denom = tf + BM25_K1 * (1.0 - BM25_B + BM25_B * (entry.length / self.avgdl))
                score += idf * ((tf * (BM25_K1 + 1.0)) / denom)
            if score <= 0:
                continue
            scored.append(RankedHit(doc_id=entry.doc_id, score=score, matched_terms=tuple(matched)))

        scored.sort(key=lambda hit: (-hit.score, hit.doc_id))
        return scored
