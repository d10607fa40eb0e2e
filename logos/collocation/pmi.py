"""
Collocation statistics and PMI.

PMI(w1, w2)  = log2( P(w1, w2) / (P(w1) P(w2)) )
             = log2( c12 * N / (c1 * c2) )
NPMI(w1, w2) = PMI / -log2(P(w1, w2)),  bounded to [-1, 1]

Significance is Dunning's log-likelihood ratio (G2) over the 2x2
contingency table of the pair; G2 > 3.84 is significant at p < 0.05.

All derived values are undefined (None) when a marginal or the pair count
is zero. An unseen pair is "no data", never PMI 0.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

DEFAULT_SIGNIFICANCE = 3.84


def pair_key(w1: str, w2: str) -> tuple[str, str]:
    """Order-independent key for a token pair."""
    return (w1, w2) if w1 <= w2 else (w2, w1)


@dataclass(frozen=True)
class PMIResult:
    """Association statistics for one token pair."""

    word1: str
    word2: str
    pmi: float
    npmi: float
    cooccurrence: int
    significance: float  # Dunning G2

    def is_significant(self, threshold: float = DEFAULT_SIGNIFICANCE) -> bool:
        return self.significance > threshold

    def to_dict(self) -> dict[str, Any]:
        return {
            "word1": self.word1,
            "word2": self.word2,
            "pmi": round(self.pmi, 4),
            "npmi": round(self.npmi, 4),
            "cooccurrence": self.cooccurrence,
            "significance": round(self.significance, 4),
        }


@dataclass(frozen=True)
class CollocationStatistics:
    """
    Raw counts from one indexing pass. Immutable.

    Attributes:
        word_counts: Unigram counts (lowercased tokens)
        pair_counts: Windowed co-occurrence counts keyed by pair_key()
        total_tokens: Corpus size N
        window_size: Tokens ahead counted as co-occurring
    """

    word_counts: Mapping[str, int]
    pair_counts: Mapping[tuple[str, str], int]
    total_tokens: int
    window_size: int

    @classmethod
    def empty(cls, window_size: int = 5) -> CollocationStatistics:
        return cls(MappingProxyType({}), MappingProxyType({}), 0, window_size)

    @classmethod
    def from_counts(
        cls,
        word_counts: Mapping[str, int],
        pair_counts: Mapping[tuple[str, str], int],
        total_tokens: int,
        window_size: int,
    ) -> CollocationStatistics:
        """Freeze mutable count maps into a statistics snapshot."""
        return cls(
            MappingProxyType(dict(word_counts)),
            MappingProxyType({pair_key(*k): v for k, v in pair_counts.items()}),
            total_tokens,
            window_size,
        )

    def to_dict(self) -> dict[str, Any]:
        """Snapshot of the raw counts, for persistence."""
        return {
            "window_size": self.window_size,
            "total_tokens": self.total_tokens,
            "word_counts": dict(self.word_counts),
            "pair_counts": [[w1, w2, c] for (w1, w2), c in self.pair_counts.items()],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CollocationStatistics:
        return cls.from_counts(
            word_counts={k: int(v) for k, v in data.get("word_counts", {}).items()},
            pair_counts={(w1, w2): int(c) for w1, w2, c in data.get("pair_counts", [])},
            total_tokens=int(data.get("total_tokens", 0)),
            window_size=int(data.get("window_size", 5)),
        )


def _xlogx_ratio(k: float, expected: float) -> float:
    if k <= 0 or expected <= 0:
        return 0.0
    return k * math.log(k / expected)


def log_likelihood_ratio(c1: int, c2: int, c12: int, n: int) -> float:
    """
    Dunning G2 for a pair with marginals c1, c2 and joint count c12.

    Contingency cells that come out negative (possible with windowed
    counting) are clamped to zero.
    """
    k11 = max(0, c12)
    k12 = max(0, c1 - c12)
    k21 = max(0, c2 - c12)
    k22 = max(0, n - c1 - c2 + c12)
    total = k11 + k12 + k21 + k22
    if total == 0:
        return 0.0

    row1, row2 = k11 + k12, k21 + k22
    col1, col2 = k11 + k21, k12 + k22

    g2 = 2.0 * (
        _xlogx_ratio(k11, row1 * col1 / total)
        + _xlogx_ratio(k12, row1 * col2 / total)
        + _xlogx_ratio(k21, row2 * col1 / total)
        + _xlogx_ratio(k22, row2 * col2 / total)
    )
    return max(0.0, g2)


class CollocationIndex:
    """
    Read-only PMI queries over one statistics snapshot.

    Instances are never mutated after construction, so any number of
    readers may share one. Reindexing produces a new index that is swapped
    in through CollocationIndexHandle.
    """

    def __init__(
        self,
        statistics: CollocationStatistics | None = None,
        significance_threshold: float = DEFAULT_SIGNIFICANCE,
    ):
        self.statistics = statistics or CollocationStatistics.empty()
        self.significance_threshold = significance_threshold
        neighbors: dict[str, list[str]] = {}
        for w1, w2 in self.statistics.pair_counts:
            neighbors.setdefault(w1, []).append(w2)
            if w1 != w2:
                neighbors.setdefault(w2, []).append(w1)
        self._neighbors = MappingProxyType({w: tuple(sorted(ns)) for w, ns in neighbors.items()})

    @property
    def total_tokens(self) -> int:
        return self.statistics.total_tokens

    @property
    def window_size(self) -> int:
        return self.statistics.window_size

    def vocabulary(self) -> list[str]:
        return sorted(self.statistics.word_counts)

    def word_count(self, word: str) -> int:
        return self.statistics.word_counts.get(word.lower(), 0)

    def pair_count(self, word1: str, word2: str) -> int:
        return self.statistics.pair_counts.get(pair_key(word1.lower(), word2.lower()), 0)

    def compute_pmi(self, word1: str, word2: str) -> PMIResult | None:
        """
        PMI / NPMI / G2 for a pair, or None when there is no data.

        Symmetric in its arguments.
        """
        w1, w2 = pair_key(word1.lower(), word2.lower())
        c1 = self.statistics.word_counts.get(w1, 0)
        c2 = self.statistics.word_counts.get(w2, 0)
        c12 = self.statistics.pair_counts.get((w1, w2), 0)
        n = self.statistics.total_tokens

        if c1 == 0 or c2 == 0 or c12 == 0 or n == 0:
            return None

        pmi = math.log2(c12 * n / (c1 * c2))

        denominator = -math.log2(c12 / n)
        if denominator <= 0:
            # P(pair) >= 1: perfect association by construction
            npmi = 1.0
        else:
            npmi = max(-1.0, min(1.0, pmi / denominator))

        return PMIResult(
            word1=w1,
            word2=w2,
            pmi=pmi,
            npmi=npmi,
            cooccurrence=c12,
            significance=log_likelihood_ratio(c1, c2, c12, n),
        )

    def neighbors(self, word: str) -> tuple[str, ...]:
        """Tokens that co-occur with `word` at least once."""
        return self._neighbors.get(word.lower(), ())

    def top_collocations(self, word: str, k: int = 20) -> list[PMIResult]:
        """
        Significant collocations of `word`, by PMI descending.

        Ties on PMI are broken by co-occurrence count, then alphabetically,
        so results are reproducible.
        """
        if k <= 0:
            return []
        w = word.lower()
        results = []
        for other in self.neighbors(w):
            if other == w:
                continue
            result = self.compute_pmi(w, other)
            if result is not None and result.is_significant(self.significance_threshold):
                results.append(result)

        def partner(r: PMIResult) -> str:
            return r.word2 if r.word1 == w else r.word1

        results.sort(key=lambda r: (-r.pmi, -r.cooccurrence, partner(r)))
        return results[:k]

    def relational_density(self, word: str, k: int = 10) -> float | None:
        """
        Mean positive NPMI over the word's top-k significant collocations.

        In [0, 1]. None when the word has no significant collocations
        (no data), so callers can fall back to a supplied value.
        """
        top = self.top_collocations(word, k)
        if not top:
            return None
        return sum(max(0.0, r.npmi) for r in top) / len(top)
