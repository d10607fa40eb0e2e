"""
Unit tests for the collocation index.

Tests counting, PMI / NPMI / G2 properties, top-collocation ranking,
chunked and cancellable builds, incremental extension, and the atomic
handle swap.
"""

import math
import threading

import pytest

from logos.collocation.builder import (
    CollocationIndexBuilder,
    CollocationIndexHandle,
    build_index,
    tokenize,
)
from logos.collocation.difficulty import TaskType, frequency_to_difficulty, pmi_to_difficulty
from logos.collocation.pmi import (
    CollocationIndex,
    CollocationStatistics,
    log_likelihood_ratio,
)
from logos.core.errors import ConfigurationError, IndexBuildCancelled

CORPUS = (
    "the patient takes medication daily . the doctor reviews the patient chart . "
    "blood pressure is high . the nurse checks blood pressure again . "
    "blood pressure medication helps the patient . the weather is cold today . "
    "high blood pressure needs daily medication . the doctor explains blood pressure ."
)


@pytest.fixture
def tokens():
    return tokenize(CORPUS)


@pytest.fixture
def index(tokens):
    builder = CollocationIndexBuilder(window_size=5, chunk_size=7)
    return CollocationIndex(builder.build(tokens), significance_threshold=3.84)


class TestCounting:
    """Tests for unigram and windowed pair counts."""

    def test_window_counts_tokens_ahead(self):
        builder = CollocationIndexBuilder(window_size=2, chunk_size=100)
        stats = builder.build(["a", "b", "c", "d"])
        index = CollocationIndex(stats)
        assert index.pair_count("a", "b") == 1
        assert index.pair_count("a", "c") == 1
        assert index.pair_count("a", "d") == 0
        assert stats.total_tokens == 4

    def test_tokens_are_lowercased(self):
        stats = CollocationIndexBuilder(window_size=2).build(["Blood", "PRESSURE"])
        assert stats.word_counts["blood"] == 1
        assert CollocationIndex(stats).pair_count("BLOOD", "pressure") == 1

    def test_chunking_does_not_change_counts(self, tokens):
        small = CollocationIndexBuilder(window_size=5, chunk_size=3).build(tokens)
        large = CollocationIndexBuilder(window_size=5, chunk_size=10_000).build(tokens)
        assert dict(small.pair_counts) == dict(large.pair_counts)
        assert dict(small.word_counts) == dict(large.word_counts)

    def test_invalid_window_is_fatal(self):
        with pytest.raises(ConfigurationError):
            CollocationIndexBuilder(window_size=0)


class TestPMI:
    """Tests for PMI, NPMI and significance."""

    def test_symmetry(self, index):
        forward = index.compute_pmi("blood", "pressure")
        backward = index.compute_pmi("pressure", "blood")
        assert forward.pmi == backward.pmi
        assert forward.npmi == backward.npmi
        assert forward.significance == backward.significance

    def test_pmi_formula(self, index):
        c1 = index.word_count("blood")
        c2 = index.word_count("pressure")
        c12 = index.pair_count("blood", "pressure")
        n = index.total_tokens
        result = index.compute_pmi("blood", "pressure")
        assert result.pmi == pytest.approx(math.log2(c12 * n / (c1 * c2)))
        assert result.cooccurrence == c12

    def test_npmi_bounded(self, index):
        for word in index.vocabulary():
            for other in index.neighbors(word):
                result = index.compute_pmi(word, other)
                assert -1.0 <= result.npmi <= 1.0

    def test_unseen_pair_is_undefined_not_zero(self, index):
        # both words occur, twelve tokens apart
        assert index.word_count("weather") == 1
        assert index.word_count("nurse") == 1
        assert index.pair_count("weather", "nurse") == 0
        assert index.compute_pmi("weather", "nurse") is None

    def test_windows_run_across_dropped_punctuation(self, index):
        # tokenize() keeps word tokens only, so "." does not end a window
        assert index.pair_count("medication", "weather") > 0
        assert index.compute_pmi("medication", "weather") is not None

    def test_unknown_word_is_undefined(self, index):
        assert index.compute_pmi("blood", "zebra") is None

    def test_empty_index(self):
        assert CollocationIndex().compute_pmi("a", "b") is None

    def test_g2_zero_for_independent_counts(self):
        # c12 / c1 == c2 / N: observed equals expected
        assert log_likelihood_ratio(c1=10, c2=20, c12=2, n=100) == pytest.approx(0.0, abs=1e-9)

    def test_g2_positive_for_association(self):
        assert log_likelihood_ratio(c1=10, c2=10, c12=9, n=1000) > 3.84


class TestTopCollocations:
    """Tests for significance-filtered ranking."""

    def test_strong_collocation_is_significant(self, index):
        results = index.top_collocations("blood", k=20)
        partners = [r.word2 if r.word1 == "blood" else r.word1 for r in results]
        assert "pressure" in partners
        strongest = max(results, key=lambda r: r.cooccurrence)
        assert {strongest.word1, strongest.word2} == {"blood", "pressure"}

    def test_rarer_partner_outranks_frequent_one(self):
        # "core" meets "rare" once in 2 occurrences and "common" 4 times in 12
        tokens = ["core", "rare", "x1", "x2", "x3", "x4", "rare"]
        tokens += ["common", "core", "y1", "y2", "y3", "y4"] * 4
        tokens += ["common", "z1", "z2", "z3", "z4", "z5"] * 8
        index = CollocationIndex(
            CollocationIndexBuilder(window_size=1).build(tokens), significance_threshold=0.0
        )
        partners = [r.word2 if r.word1 == "core" else r.word1 for r in index.top_collocations("core", k=5)]
        assert partners.index("rare") < partners.index("common")

    def test_word_is_not_its_own_collocation(self):
        index = build_index(tokenize("the cat sat on the the mat the dog"), window_size=3, significance_threshold=0.0)
        assert index.pair_count("the", "the") > 0
        partners = [r.word2 if r.word1 == "the" else r.word1 for r in index.top_collocations("the", k=10)]
        assert "the" not in partners
        assert partners
        npmis = [max(0.0, r.npmi) for r in index.top_collocations("the", k=10)]
        assert index.relational_density("the") == pytest.approx(sum(npmis) / len(npmis))

    def test_results_are_significant_and_sorted(self, index):
        results = index.top_collocations("blood", k=10)
        assert all(r.significance > 3.84 for r in results)
        pmis = [r.pmi for r in results]
        assert pmis == sorted(pmis, reverse=True)

    def test_k_limits_results(self, index):
        assert len(index.top_collocations("the", k=1)) <= 1
        assert index.top_collocations("the", k=0) == []

    def test_relational_density_in_unit_interval(self, index):
        density = index.relational_density("blood")
        assert density is not None
        assert 0.0 <= density <= 1.0

    def test_relational_density_none_without_data(self, index):
        assert index.relational_density("zebra") is None


class TestBuilder:
    """Tests for cancellable and incremental builds."""

    def test_cancelled_build_raises(self, tokens):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(IndexBuildCancelled):
            CollocationIndexBuilder(window_size=5, chunk_size=4).build(tokens, cancel=cancel)

    def test_cancel_midway(self, tokens):
        cancel = threading.Event()

        def progress(done, total):
            cancel.set()

        with pytest.raises(IndexBuildCancelled):
            CollocationIndexBuilder(window_size=5, chunk_size=4).build(tokens, cancel=cancel, progress=progress)

    def test_extend_adds_counts_without_mutating(self):
        builder = CollocationIndexBuilder(window_size=2)
        base = builder.build(["red", "wine"])
        extended = builder.extend(base, ["red", "wine", "glass"])

        assert base.total_tokens == 2
        assert extended.total_tokens == 5
        assert extended.word_counts["red"] == 2
        assert CollocationIndex(extended).pair_count("red", "wine") == 2
        assert CollocationIndex(base).pair_count("red", "wine") == 1

    def test_documents_do_not_share_windows(self):
        builder = CollocationIndexBuilder(window_size=3)
        stats = builder.build_documents([["alpha", "beta"], ["gamma", "delta"]])
        assert CollocationIndex(stats).pair_count("beta", "gamma") == 0

    def test_extend_with_different_window_is_fatal(self):
        base = CollocationIndexBuilder(window_size=2).build(["a", "b"])
        with pytest.raises(ConfigurationError):
            CollocationIndexBuilder(window_size=3).extend(base, ["c"])

    def test_statistics_dict_round_trip(self, tokens):
        stats = CollocationIndexBuilder(window_size=5).build(tokens)
        restored = CollocationStatistics.from_dict(stats.to_dict())
        assert dict(restored.pair_counts) == dict(stats.pair_counts)
        assert dict(restored.word_counts) == dict(stats.word_counts)
        assert restored.total_tokens == stats.total_tokens


class TestHandle:
    """Tests for rebuild-then-swap publication."""

    def test_swap_replaces_current_atomically(self, tokens):
        handle = CollocationIndexHandle()
        old = handle.current()
        new = build_index(tokens, window_size=5, significance_threshold=3.84)

        previous = handle.swap(new)

        assert previous is old
        assert handle.current() is new
        assert handle.generation == 1

    def test_readers_keep_their_snapshot(self, tokens):
        handle = CollocationIndexHandle(build_index(["a", "b"], window_size=2))
        snapshot = handle.current()
        handle.rebuild(CollocationIndexBuilder(window_size=2), tokens)
        assert snapshot.total_tokens == 2
        assert handle.current().total_tokens == len(tokens)

    def test_cancelled_rebuild_keeps_published_index(self, tokens):
        original = build_index(["a", "b"], window_size=2)
        handle = CollocationIndexHandle(original)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(IndexBuildCancelled):
            handle.rebuild(CollocationIndexBuilder(window_size=2), tokens, cancel=cancel)
        assert handle.current() is original
        assert handle.generation == 0

    def test_incremental_rebuild(self):
        handle = CollocationIndexHandle(build_index(["a", "b"], window_size=2))
        handle.rebuild(CollocationIndexBuilder(window_size=2), ["a", "b"], incremental=True)
        assert handle.current().pair_count("a", "b") == 2


class TestDifficultyMapping:
    def test_higher_pmi_is_easier(self):
        assert pmi_to_difficulty(8.0) < pmi_to_difficulty(1.0)

    def test_pmi_range_maps_to_logit_scale(self):
        assert pmi_to_difficulty(10.0) == pytest.approx(-3.0)
        assert pmi_to_difficulty(-2.0) == pytest.approx(3.0)

    def test_task_modifiers(self):
        base = pmi_to_difficulty(4.0, TaskType.RECALL_CUED)
        assert pmi_to_difficulty(4.0, TaskType.PRODUCTION) == pytest.approx(base + 1.0)
        assert pmi_to_difficulty(4.0, "recognition") == pytest.approx(base - 0.5)

    def test_frequency_mapping(self):
        assert frequency_to_difficulty(1.0) == pytest.approx(-3.0)
        assert frequency_to_difficulty(0.0, TaskType.TIMED) == pytest.approx(3.3)
