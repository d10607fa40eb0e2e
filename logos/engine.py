"""
Learning engine facade.

Wires the five components together for callers that want one entry
point. Nothing here holds learner state: profiles and memory states come
in as arguments and updated copies go out in an EngineUpdate, so the
caller decides when (and whether) to persist them.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger

from logos.ability.irt import ItemParameters
from logos.ability.profile import AbilityEstimator, AbilityProfile
from logos.collocation.builder import CollocationIndexHandle
from logos.core.components import ComponentType
from logos.core.errors import InputValidationError
from logos.core.records import CandidateObject, ResponseRecord, parse_response
from logos.diagnosis.bottleneck import BottleneckDetector, BottleneckReport
from logos.memory.fsrs import MemoryState, Rating
from logos.memory.mastery import MemoryScheduler
from logos.priority.engine import PriorityEngine, PriorityWeights, RankedItem


@dataclass(frozen=True)
class EngineUpdate:
    """Everything that changed because of one response."""

    response: ResponseRecord
    profile: AbilityProfile
    memory_state: MemoryState
    rating: Rating
    previous_stage: int
    stage: int
    next_review_at: datetime | None
    recommended_cue_level: int

    @property
    def is_error(self) -> bool:
        """Incorrect responses feed the bottleneck error history."""
        return not self.response.correct

    def to_dict(self) -> dict[str, Any]:
        return {
            "object_id": self.response.object_id,
            "component": self.response.component.value,
            "rating": self.rating.name,
            "theta": self.profile.theta,
            "standard_error": self.profile.standard_error,
            "stability": self.memory_state.stability,
            "state": self.memory_state.state.value,
            "stage": self.stage,
            "next_review_at": self.next_review_at.isoformat() if self.next_review_at else None,
            "recommended_cue_level": self.recommended_cue_level,
        }


class LearningEngine:
    """
    Single entry point over ability, memory, priority and diagnosis.

    Usage:
        engine = LearningEngine()
        update = engine.process_response(record, profile, state, item)
        ranked = engine.rank(candidates, {s.object_id: s for s in states})
    """

    def __init__(
        self,
        estimator: AbilityEstimator | None = None,
        scheduler: MemoryScheduler | None = None,
        weights: PriorityWeights | None = None,
        detector: BottleneckDetector | None = None,
        collocations: CollocationIndexHandle | None = None,
    ):
        self.estimator = estimator or AbilityEstimator()
        self.scheduler = scheduler or MemoryScheduler()
        self.weights = weights or PriorityWeights.from_settings()
        self.detector = detector or BottleneckDetector()
        self.collocations = collocations or CollocationIndexHandle()

    def process_response(
        self,
        raw: ResponseRecord | dict,
        profile: AbilityProfile,
        memory_state: MemoryState,
        item: ItemParameters | None = None,
        now: datetime | None = None,
    ) -> EngineUpdate:
        """
        Validate a response and compute the updated profile and memory state.

        Validation happens before anything is computed; inputs are never
        modified.
        """
        response = parse_response(raw)
        if profile.component != response.component:
            raise InputValidationError(
                f"Response for {response.component.value} applied to "
                f"{profile.component.value} profile",
                errors=[{"loc": ("component",), "msg": "component mismatch"}],
            )
        if memory_state.object_id != response.object_id:
            raise InputValidationError(
                f"Response for {response.object_id!r} applied to memory state of "
                f"{memory_state.object_id!r}",
                errors=[{"loc": ("object_id",), "msg": "object mismatch"}],
            )

        item = item or ItemParameters(item_id=response.object_id)
        now = now or response.timestamp

        new_profile = self.estimator.record_response(profile, response, item)
        outcome = self.scheduler.review(memory_state, response, now)

        logger.debug(
            f"Processed {response.object_id} ({response.component.value}): "
            f"correct={response.correct} rating={outcome.rating.name} stage={outcome.stage}"
        )

        return EngineUpdate(
            response=response,
            profile=new_profile,
            memory_state=outcome.state,
            rating=outcome.rating,
            previous_stage=outcome.previous_stage,
            stage=outcome.stage,
            next_review_at=self.scheduler.next_review_at(outcome.state),
            recommended_cue_level=self.scheduler.recommend_cue_level(outcome.state),
        )

    def priority_engine(self, adapt_to_level: bool = False) -> PriorityEngine:
        """PriorityEngine bound to the currently published collocation index."""
        return PriorityEngine(
            weights=self.weights,
            scheduler=self.scheduler,
            collocations=self.collocations.current(),
            adapt_to_level=adapt_to_level,
        )

    def rank(
        self,
        candidates: Sequence[CandidateObject | dict],
        memory_states: Mapping[str, MemoryState] | None = None,
        profiles: Mapping[ComponentType, AbilityProfile] | None = None,
        now: datetime | None = None,
        target_domains: Collection[str] = (),
        limit: int | None = None,
    ) -> list[RankedItem]:
        abilities = {component: p.theta for component, p in (profiles or {}).items()}
        return self.priority_engine().rank(
            candidates,
            memory_states or {},
            now=now,
            abilities=abilities,
            target_domains=target_domains,
            limit=limit,
        )

    def diagnose(
        self,
        records: Sequence[ResponseRecord | dict],
        window: int | None = None,
    ) -> BottleneckReport:
        return self.detector.analyze(records, window=window)

    def select_next_item(
        self,
        profile: AbilityProfile,
        candidates: list[ItemParameters],
    ) -> ItemParameters | None:
        return self.estimator.select_next_item(profile, candidates)
