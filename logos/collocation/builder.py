"""
Collocation index building.

Indexing is O(tokens x window) and runs outside the request path as a
chunked batch job. Between chunks the job checks a cancellation event and
aborts with IndexBuildCancelled, leaving the published index untouched.

A finished build is published by swapping the handle's reference under a
lock; readers holding the old index keep a consistent snapshot.
"""

from __future__ import annotations

import re
import threading
from collections import Counter
from collections.abc import Callable, Iterable, Sequence

from loguru import logger

from config import get_settings
from logos.collocation.pmi import (
    DEFAULT_SIGNIFICANCE,
    CollocationIndex,
    CollocationStatistics,
    pair_key,
)
from logos.core.errors import ConfigurationError, IndexBuildCancelled

TOKEN_PATTERN = re.compile(r"[\w']+", re.UNICODE)

ProgressCallback = Callable[[int, int], None]


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens."""
    return [t.lower() for t in TOKEN_PATTERN.findall(text)]


class CollocationIndexBuilder:
    """
    Builds CollocationStatistics from token sequences.

    Usage:
        builder = CollocationIndexBuilder(window_size=5)
        stats = builder.build(tokens, cancel=event)
        stats = builder.extend(stats, more_tokens)
    """

    def __init__(
        self,
        window_size: int | None = None,
        chunk_size: int | None = None,
    ):
        settings = get_settings()
        self.window_size = window_size if window_size is not None else settings.collocation_window_size
        self.chunk_size = chunk_size if chunk_size is not None else settings.collocation_chunk_size
        if self.window_size < 1:
            raise ConfigurationError(f"window_size must be >= 1, got {self.window_size}")
        if self.chunk_size < 1:
            raise ConfigurationError(f"chunk_size must be >= 1, got {self.chunk_size}")

    def build(
        self,
        tokens: Sequence[str],
        cancel: threading.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> CollocationStatistics:
        """Full build over one token sequence."""
        word_counts: Counter[str] = Counter()
        pair_counts: Counter[tuple[str, str]] = Counter()
        self._accumulate(tokens, word_counts, pair_counts, cancel, progress)
        stats = CollocationStatistics.from_counts(
            word_counts, pair_counts, len(tokens), self.window_size
        )
        logger.info(
            f"Indexed {stats.total_tokens} tokens: "
            f"{len(stats.word_counts)} types, {len(stats.pair_counts)} pairs"
        )
        return stats

    def build_documents(
        self,
        documents: Iterable[Sequence[str]],
        cancel: threading.Event | None = None,
    ) -> CollocationStatistics:
        """Build over several documents; windows never cross document boundaries."""
        stats = CollocationStatistics.empty(self.window_size)
        for document in documents:
            stats = self.extend(stats, document, cancel=cancel)
        return stats

    def extend(
        self,
        statistics: CollocationStatistics,
        tokens: Sequence[str],
        cancel: threading.Event | None = None,
        progress: ProgressCallback | None = None,
    ) -> CollocationStatistics:
        """
        Incremental build: counts of `tokens` added to existing statistics.

        Returns a new snapshot; `statistics` is not modified.
        """
        if statistics.window_size != self.window_size:
            raise ConfigurationError(
                f"Cannot extend statistics built with window {statistics.window_size} "
                f"using window {self.window_size}"
            )
        word_counts: Counter[str] = Counter(statistics.word_counts)
        pair_counts: Counter[tuple[str, str]] = Counter(statistics.pair_counts)
        self._accumulate(tokens, word_counts, pair_counts, cancel, progress)
        stats = CollocationStatistics.from_counts(
            word_counts, pair_counts, statistics.total_tokens + len(tokens), self.window_size
        )
        logger.info(f"Extended index by {len(tokens)} tokens (total {stats.total_tokens})")
        return stats

    def _accumulate(
        self,
        tokens: Sequence[str],
        word_counts: Counter[str],
        pair_counts: Counter[tuple[str, str]],
        cancel: threading.Event | None,
        progress: ProgressCallback | None,
    ) -> None:
        normalized = [t.lower() for t in tokens]
        n = len(normalized)

        for start in range(0, n, self.chunk_size):
            if cancel is not None and cancel.is_set():
                logger.warning(f"Index build cancelled at token {start}/{n}")
                raise IndexBuildCancelled(f"Index build cancelled at token {start} of {n}")

            end = min(start + self.chunk_size, n)
            for i in range(start, end):
                w1 = normalized[i]
                word_counts[w1] += 1
                for j in range(i + 1, min(i + self.window_size + 1, n)):
                    pair_counts[pair_key(w1, normalized[j])] += 1

            logger.debug(f"Indexed chunk {start}-{end} of {n}")
            if progress is not None:
                progress(end, n)


class CollocationIndexHandle:
    """
    Owner of the currently published CollocationIndex.

    Readers call `current()` once per request and work on that snapshot.
    Rebuilds happen off to the side and are published with `swap()`.
    """

    def __init__(self, index: CollocationIndex | None = None):
        self._index = index or CollocationIndex()
        self._lock = threading.Lock()
        self._generation = 0

    def current(self) -> CollocationIndex:
        with self._lock:
            return self._index

    @property
    def generation(self) -> int:
        """Number of swaps performed so far."""
        return self._generation

    def swap(self, index: CollocationIndex) -> CollocationIndex:
        """Publish a new index; returns the one it replaced."""
        with self._lock:
            previous, self._index = self._index, index
            self._generation += 1
        logger.info(
            f"Published collocation index generation {self._generation} "
            f"({index.total_tokens} tokens)"
        )
        return previous

    def rebuild(
        self,
        builder: CollocationIndexBuilder,
        tokens: Sequence[str],
        cancel: threading.Event | None = None,
        significance_threshold: float | None = None,
        incremental: bool = False,
    ) -> CollocationIndex:
        """
        Build a new index and swap it in.

        On cancellation the published index is left as it was and
        IndexBuildCancelled propagates.
        """
        base = self.current()
        threshold = (
            significance_threshold
            if significance_threshold is not None
            else base.significance_threshold
        )
        if incremental:
            stats = builder.extend(base.statistics, tokens, cancel=cancel)
        else:
            stats = builder.build(tokens, cancel=cancel)
        index = CollocationIndex(stats, threshold)
        self.swap(index)
        return index


def build_index(
    tokens: Sequence[str],
    window_size: int | None = None,
    significance_threshold: float | None = None,
) -> CollocationIndex:
    """Convenience one-shot build."""
    builder = CollocationIndexBuilder(window_size=window_size)
    threshold = (
        significance_threshold
        if significance_threshold is not None
        else get_settings().collocation_significance or DEFAULT_SIGNIFICANCE
    )
    return CollocationIndex(builder.build(tokens), threshold)
