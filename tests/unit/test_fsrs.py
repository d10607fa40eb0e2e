"""
Unit tests for the FSRS scheduler.

Tests retrievability, stability growth and decay, difficulty updates,
the review state machine, rating derivation, and snapshot round-trips.
"""

import json
from datetime import UTC, datetime, timedelta

import pytest

from logos.core.errors import ConfigurationError
from logos.core.records import parse_response
from logos.memory.fsrs import (
    CardState,
    FSRSParameters,
    FSRSScheduler,
    MemoryState,
    Rating,
    days_between,
    rating_from_response,
    retrievability,
)

T0 = datetime(2025, 1, 1, 8, 0, 0)


@pytest.fixture
def fsrs():
    return FSRSScheduler(FSRSParameters())


def review_when_due(fsrs, state, rating):
    """Schedule `rating` exactly at the state's due date."""
    return fsrs.schedule(state, rating, fsrs.next_review_at(state))


class TestRetrievability:
    """Tests for R(t) = e^(-t/S)."""

    def test_r_at_zero_is_one(self):
        assert retrievability(0.0, 5.0) == 1.0
        assert retrievability(0.0, 0.0) == 1.0

    def test_non_increasing_in_elapsed_time(self):
        values = [retrievability(t, 7.5) for t in [0, 0.5, 1, 2, 5, 10, 30, 100, 1000]]
        for earlier, later in zip(values, values[1:]):
            assert later <= earlier

    def test_stability_is_e_folding_time(self):
        assert retrievability(12.0, 12.0) == pytest.approx(0.36788, abs=1e-5)

    def test_negative_elapsed_treated_as_zero(self):
        assert retrievability(-3.0, 5.0) == 1.0

    def test_state_retrievability(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.GOOD, T0)
        assert fsrs.retrievability(state, T0) == 1.0
        assert fsrs.retrievability(state, T0 + timedelta(days=3)) < 1.0

    def test_never_reviewed_has_zero_retrievability(self, fsrs):
        assert fsrs.retrievability(MemoryState(object_id="x"), T0) == 0.0


class TestStability:
    """Tests for stability growth and decay."""

    def test_initial_stability_from_rating_table(self, fsrs):
        for rating, expected in zip(Rating, [0.4, 0.6, 2.4, 5.8]):
            state = fsrs.schedule(MemoryState(object_id="x"), rating, T0)
            assert state.stability == pytest.approx(expected)

    def test_consecutive_easy_ratings_strictly_increase_stability(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.EASY, T0)
        previous = state.stability
        for _ in range(6):
            state = review_when_due(fsrs, state, Rating.EASY)
            assert state.stability > previous
            previous = state.stability

    def test_canonical_good_sequence_grows(self, fsrs):
        """First Good, then Good at each due date: growth factor > 1 every time."""
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.GOOD, T0)
        for _ in range(4):
            before = state.stability
            state = review_when_due(fsrs, state, Rating.GOOD)
            assert state.stability / before > 1.0
            assert state.state == CardState.REVIEW

    def test_hard_good_easy_ordering(self, fsrs):
        base = fsrs.schedule(MemoryState(object_id="x"), Rating.GOOD, T0)
        when = T0 + timedelta(days=5)
        hard = fsrs.schedule(base, Rating.HARD, when).stability
        good = fsrs.schedule(base, Rating.GOOD, when).stability
        easy = fsrs.schedule(base, Rating.EASY, when).stability
        assert hard < good < easy

    def test_failure_uses_forget_formula(self, fsrs):
        base = fsrs.schedule(MemoryState(object_id="x"), Rating.GOOD, T0)
        failed = fsrs.schedule(base, Rating.AGAIN, T0 + timedelta(days=5))
        expected = fsrs.forget_stability(base.stability, base.difficulty)
        assert failed.stability == pytest.approx(expected)
        assert failed.stability < base.stability
        assert failed.stability >= 0.1

    def test_recall_stability_rejects_failing_rating(self, fsrs):
        with pytest.raises(ValueError):
            fsrs.recall_stability(3.0, 5.0, 0.9, Rating.AGAIN)


class TestDifficulty:
    """Tests for difficulty initialization and updates."""

    def test_initial_difficulty(self, fsrs):
        assert fsrs.initial_difficulty(Rating.GOOD) == pytest.approx(4.93)
        assert fsrs.initial_difficulty(Rating.EASY) == pytest.approx(3.99)
        assert fsrs.initial_difficulty(Rating.AGAIN) == pytest.approx(6.81)

    def test_difficulty_clamped_to_range(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.AGAIN, T0)
        for day in range(1, 10):
            state = fsrs.schedule(state, Rating.AGAIN, T0 + timedelta(days=day))
        assert state.difficulty == 10.0

        state = fsrs.schedule(MemoryState(object_id="y"), Rating.EASY, T0)
        for day in range(1, 10):
            state = fsrs.schedule(state, Rating.EASY, T0 + timedelta(days=day))
        assert state.difficulty == 1.0

    def test_good_leaves_difficulty_unchanged(self, fsrs):
        assert fsrs.next_difficulty(6.2, Rating.GOOD) == pytest.approx(6.2)


class TestStateMachine:
    """Tests for review state transitions."""

    def test_new_to_learning_on_again(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.AGAIN, T0)
        assert state.state == CardState.LEARNING
        assert state.reps == 1
        assert state.lapses == 0

    @pytest.mark.parametrize("rating", [Rating.HARD, Rating.GOOD, Rating.EASY])
    def test_new_to_review_on_pass(self, fsrs, rating):
        assert fsrs.schedule(MemoryState(object_id="x"), rating, T0).state == CardState.REVIEW

    def test_review_to_relearning_on_again(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.GOOD, T0)
        state = fsrs.schedule(state, Rating.AGAIN, T0 + timedelta(days=2))
        assert state.state == CardState.RELEARNING
        assert state.lapses == 1

    def test_relearning_to_review_on_pass(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.GOOD, T0)
        state = fsrs.schedule(state, Rating.AGAIN, T0 + timedelta(days=2))
        state = fsrs.schedule(state, Rating.GOOD, T0 + timedelta(days=3))
        assert state.state == CardState.REVIEW
        assert state.lapses == 1

    def test_learning_stays_learning_on_again(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.AGAIN, T0)
        state = fsrs.schedule(state, Rating.AGAIN, T0 + timedelta(hours=1))
        assert state.state == CardState.LEARNING
        assert state.lapses == 1

    def test_learning_to_review_on_pass(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.AGAIN, T0)
        state = fsrs.schedule(state, Rating.HARD, T0 + timedelta(hours=1))
        assert state.state == CardState.REVIEW

    def test_schedule_does_not_mutate_input(self, fsrs):
        original = MemoryState(object_id="x")
        fsrs.schedule(original, Rating.GOOD, T0)
        assert original.state == CardState.NEW
        assert original.last_review is None


class TestIntervals:
    """Tests for interval and due-date computation."""

    def test_interval_meets_request_retention(self, fsrs):
        interval = fsrs.next_interval(100.0)
        assert interval == 11
        assert retrievability(interval, 100.0) == pytest.approx(0.9, abs=0.01)

    def test_interval_at_least_one_day(self, fsrs):
        assert fsrs.next_interval(0.4) == 1

    def test_interval_capped(self):
        fsrs = FSRSScheduler(FSRSParameters(maximum_interval=30))
        assert fsrs.next_interval(10_000.0) == 30

    def test_due_dates(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.GOOD, T0)
        due = fsrs.next_review_at(state)
        assert due == T0 + timedelta(days=1)
        assert not fsrs.is_due(state, T0)
        assert fsrs.is_due(state, due)
        assert fsrs.next_review_at(MemoryState(object_id="new")) is None

    def test_naive_review_against_aware_now(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x"), Rating.GOOD, T0)
        aware = T0.replace(tzinfo=UTC)
        assert days_between(T0, aware + timedelta(hours=12)) == pytest.approx(0.5)
        assert fsrs.is_due(state, aware + timedelta(days=1))
        assert fsrs.retrievability(state, aware) == pytest.approx(1.0)


class TestRatingFromResponse:
    """Tests for response -> rating mapping."""

    def _response(self, **overrides):
        data = {
            "object_id": "x",
            "component": "LEX",
            "correct": True,
            "cue_level": 0,
            "response_time_ms": 1000,
            "timestamp": T0,
        }
        data.update(overrides)
        return parse_response(data)

    def test_incorrect_is_again(self):
        assert rating_from_response(self._response(correct=False, cue_level=2)) == Rating.AGAIN

    def test_cued_is_hard(self):
        assert rating_from_response(self._response(cue_level=1)) == Rating.HARD

    def test_slow_cue_free_is_good(self):
        assert rating_from_response(self._response(response_time_ms=5001)) == Rating.GOOD

    def test_fast_cue_free_is_easy(self):
        assert rating_from_response(self._response(response_time_ms=5000)) == Rating.EASY


class TestParameters:
    def test_wrong_weight_count_is_fatal(self):
        with pytest.raises(ConfigurationError):
            FSRSParameters(weights=(1.0,) * 16)

    def test_retention_out_of_range_is_fatal(self):
        with pytest.raises(ConfigurationError):
            FSRSParameters(request_retention=1.0)


class TestMemoryStateSnapshot:
    """Tests for MemoryState serialization."""

    def test_json_round_trip_within_tolerance(self, fsrs):
        state = fsrs.schedule(MemoryState(object_id="x", learner_id="l1"), Rating.GOOD, T0)
        state = review_when_due(fsrs, state, Rating.HARD)

        restored = MemoryState.from_dict(json.loads(json.dumps(state.to_dict())))

        assert restored.object_id == state.object_id
        assert restored.learner_id == state.learner_id
        assert restored.state == state.state
        assert restored.last_review == state.last_review
        assert restored.reps == state.reps
        assert restored.lapses == state.lapses
        for name in ("stability", "difficulty", "cue_free_accuracy", "cue_assisted_accuracy"):
            assert getattr(restored, name) == pytest.approx(getattr(state, name), abs=1e-9)

    def test_new_state_round_trip(self):
        state = MemoryState(object_id="fresh")
        assert MemoryState.from_dict(state.to_dict()) == state
