"""
Integration tests for the learning engine facade.

Walks a learner through responses, ranking and diagnosis with every
component wired together.
"""

from datetime import datetime, timedelta

import pytest

from logos.ability.irt import IRTConfig, ItemParameters
from logos.ability.profile import AbilityEstimator
from logos.collocation.builder import CollocationIndexBuilder, CollocationIndexHandle, tokenize
from logos.core.components import ComponentType
from logos.core.errors import InputValidationError
from logos.diagnosis.bottleneck import BottleneckConfig, BottleneckDetector
from logos.engine import LearningEngine
from logos.memory.fsrs import CardState, FSRSScheduler, Rating
from logos.memory.mastery import MasteryThresholds, MemoryScheduler
from logos.priority.engine import PriorityWeights

START = datetime(2025, 3, 1, 9, 0, 0)


@pytest.fixture
def engine():
    return LearningEngine(
        estimator=AbilityEstimator(IRTConfig()),
        scheduler=MemoryScheduler(FSRSScheduler(), MasteryThresholds()),
        weights=PriorityWeights(),
        detector=BottleneckDetector(BottleneckConfig()),
        collocations=CollocationIndexHandle(),
    )


class TestProcessResponse:
    def test_updates_profile_and_memory(self, engine, sample_response):
        profile = engine.estimator.new_profile("learner-1", ComponentType.LEX)
        state = engine.scheduler.new_state("lex-001", "learner-1")

        update = engine.process_response(sample_response, profile, state, ItemParameters(item_id="lex-001"))

        assert update.rating == Rating.EASY
        assert update.memory_state.state == CardState.REVIEW
        assert update.memory_state.exposure_count == 1
        assert len(update.profile.history) == 1
        assert update.profile.theta > 0.0
        assert update.next_review_at is not None
        assert update.is_error is False

    def test_inputs_are_not_modified(self, engine, sample_response):
        profile = engine.estimator.new_profile("learner-1", ComponentType.LEX)
        state = engine.scheduler.new_state("lex-001", "learner-1")

        engine.process_response(sample_response, profile, state)

        assert profile.history == ()
        assert state.exposure_count == 0
        assert state.last_review is None

    def test_invalid_record_rejected_before_any_update(self, engine, sample_response):
        profile = engine.estimator.new_profile("learner-1", ComponentType.LEX)
        state = engine.scheduler.new_state("lex-001")
        with pytest.raises(InputValidationError):
            engine.process_response({**sample_response, "cue_level": 5}, profile, state)

    def test_component_mismatch_rejected(self, engine, sample_response):
        profile = engine.estimator.new_profile("learner-1", ComponentType.SYNT)
        state = engine.scheduler.new_state("lex-001")
        with pytest.raises(InputValidationError):
            engine.process_response(sample_response, profile, state)

    def test_object_mismatch_rejected(self, engine, sample_response):
        profile = engine.estimator.new_profile("learner-1", ComponentType.LEX)
        state = engine.scheduler.new_state("other")
        with pytest.raises(InputValidationError):
            engine.process_response(sample_response, profile, state)


class TestLearnerJourney:
    def test_reviews_then_ranking(self, engine, sample_candidates, sample_response):
        profile = engine.estimator.new_profile("learner-1", ComponentType.LEX)
        state = engine.scheduler.new_state("lex-001", "learner-1")
        when = START
        for correct in (True, False, True):
            update = engine.process_response(
                {**sample_response, "correct": correct, "timestamp": when.isoformat()},
                profile,
                state,
            )
            profile, state = update.profile, update.memory_state
            when = update.next_review_at or when + timedelta(days=1)

        ranked = engine.rank(
            sample_candidates,
            {state.object_id: state},
            profiles={ComponentType.LEX: profile},
            now=when + timedelta(days=30),
        )

        assert {r.object_id for r in ranked} == {"lex-001", "lex-002", "lex-003"}
        flags = {r.object_id: r.due_for_review for r in ranked}
        assert flags["lex-001"] is True
        assert all(r.score >= 0 for r in ranked)

    def test_zulu_response_then_rank_with_default_now(self, engine, sample_response):
        profile = engine.estimator.new_profile("learner-1", ComponentType.LEX)
        state = engine.scheduler.new_state("lex-001", "learner-1")

        update = engine.process_response(
            {**sample_response, "timestamp": "2025-03-01T09:00:00Z"}, profile, state
        )
        ranked = engine.rank([{"object_id": "lex-001", "frequency": 0.5}], {"lex-001": update.memory_state})

        assert update.memory_state.last_review.utcoffset() == timedelta(0)
        assert ranked[0].due_for_review is True

    def test_rank_uses_published_collocations(self, engine):
        text = "blood pressure rises . blood pressure falls . blood pressure again . cats sleep"
        engine.collocations.rebuild(CollocationIndexBuilder(window_size=2), tokenize(text), significance_threshold=0.0)

        ranked = engine.rank([{"object_id": "w1", "content": "blood", "frequency": 0.5}], now=START)

        assert ranked[0].breakdown.relational_density > 0.0

    def test_diagnose(self, engine, response_factory):
        records = response_factory("PHON", 16, 20, START)
        for component in ("MORPH", "LEX", "SYNT", "PRAG"):
            records += response_factory(component, 2, 20, START)

        report = engine.diagnose(records)

        assert report.primary_bottleneck == ComponentType.PHON
        assert report.to_dict()["primary_bottleneck"] == "PHON"

    def test_select_next_item(self, engine):
        profile = engine.estimator.new_profile("learner-1", ComponentType.LEX)
        items = [ItemParameters(item_id="far", b=3.0), ItemParameters(item_id="near", b=0.2)]
        assert engine.select_next_item(profile, items).item_id == "near"
