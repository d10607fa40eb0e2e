"""
Mastery tracking on top of FSRS.

Mastery stages (derived, never stored):
    0 - Unknown:     no reliable recognition yet
    1 - Recognition: recognizes with cues
    2 - Recall:      recalls cue-free > 60%, or with cues > 80%
    3 - Controlled:  reliable cue-free production, week+ stability
    4 - Automatic:   near-perfect, month+ stability, minimal scaffolding gap

Stages are checked top-down so a lower stage never masks a higher one.

Accuracy tracks are exponentially weighted moving averages:
    cue-free:     weight = 1 / (exposures * 0.3 + 1), shrinking with history
    cue-assisted: fixed weight 0.2
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from loguru import logger

from config import get_settings
from logos.core.errors import ConfigurationError
from logos.core.records import ResponseRecord
from logos.memory.fsrs import FSRSScheduler, MemoryState, Rating, rating_from_response


@dataclass(frozen=True)
class MasteryThresholds:
    """Documented stage cutoffs. Comparisons use >= for accuracy, > for stability, < for gap."""

    stage4_accuracy: float = 0.9
    stage4_stability: float = 30.0
    stage4_gap: float = 0.1
    stage3_accuracy: float = 0.75
    stage3_stability: float = 7.0
    stage2_accuracy: float = 0.6
    stage2_assisted: float = 0.8
    stage1_assisted: float = 0.5
    cue_assisted_weight: float = 0.2
    cue_free_decay: float = 0.3

    def __post_init__(self) -> None:
        for name in (
            "stage4_accuracy", "stage4_gap", "stage3_accuracy", "stage2_accuracy",
            "stage2_assisted", "stage1_assisted", "cue_assisted_weight",
        ):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")
        if self.cue_free_decay < 0:
            raise ConfigurationError("cue_free_decay must be >= 0")

    @classmethod
    def from_settings(cls) -> MasteryThresholds:
        settings = get_settings()
        return cls(
            **settings.get_mastery_thresholds(),
            cue_assisted_weight=settings.mastery_cue_assisted_weight,
            cue_free_decay=settings.mastery_cue_free_decay,
        )


DEFAULT_THRESHOLDS = MasteryThresholds()


def classify_stage(
    cue_free_accuracy: float,
    stability: float,
    scaffolding_gap: float,
    cue_assisted_accuracy: float | None = None,
    thresholds: MasteryThresholds = DEFAULT_THRESHOLDS,
) -> int:
    """
    Mastery stage from accuracy, stability and scaffolding gap.

    When the cue-assisted accuracy is not given it is taken as
    cue_free_accuracy + scaffolding_gap.

    Examples:
        >>> classify_stage(0.95, 40, 0.05)
        4
        >>> classify_stage(0.65, 10, 0.25)
        2
    """
    if cue_assisted_accuracy is None:
        cue_assisted_accuracy = cue_free_accuracy + scaffolding_gap
    t = thresholds

    if (
        cue_free_accuracy >= t.stage4_accuracy
        and stability > t.stage4_stability
        and scaffolding_gap < t.stage4_gap
    ):
        return 4
    if cue_free_accuracy >= t.stage3_accuracy and stability > t.stage3_stability:
        return 3
    if cue_free_accuracy >= t.stage2_accuracy or cue_assisted_accuracy >= t.stage2_assisted:
        return 2
    if cue_assisted_accuracy >= t.stage1_assisted:
        return 1
    return 0


def mastery_stage(state: MemoryState, thresholds: MasteryThresholds = DEFAULT_THRESHOLDS) -> int:
    """Stage of a memory state; 0 for objects never exposed."""
    if state.exposure_count == 0:
        return 0
    return classify_stage(
        state.cue_free_accuracy,
        state.stability,
        state.cue_assisted_accuracy - state.cue_free_accuracy,
        state.cue_assisted_accuracy,
        thresholds,
    )


def update_accuracy(
    state: MemoryState,
    correct: bool,
    cue_level: int,
    thresholds: MasteryThresholds = DEFAULT_THRESHOLDS,
) -> MemoryState:
    """
    Fold one response into the accuracy tracks and bump the exposure count.

    Only the track matching the response's cue level moves.
    """
    exposures = state.exposure_count + 1
    outcome = 1.0 if correct else 0.0

    if cue_level == 0:
        weight = 1.0 / (exposures * thresholds.cue_free_decay + 1.0)
        return replace(
            state,
            exposure_count=exposures,
            cue_free_accuracy=(1.0 - weight) * state.cue_free_accuracy + weight * outcome,
        )

    weight = thresholds.cue_assisted_weight
    return replace(
        state,
        exposure_count=exposures,
        cue_assisted_accuracy=(1.0 - weight) * state.cue_assisted_accuracy + weight * outcome,
    )


def recommend_cue_level(state: MemoryState) -> int:
    """Cue level to present next: fewer cues as the scaffolding gap closes."""
    gap = state.scaffolding_gap
    attempts = state.exposure_count
    if gap < 0.1 and attempts > 3:
        return 0
    if gap < 0.2 and attempts > 2:
        return 1
    if gap < 0.3:
        return 2
    return 3


@dataclass(frozen=True)
class ReviewOutcome:
    """Result of applying one response to a memory state."""

    state: MemoryState
    rating: Rating
    previous_stage: int
    stage: int

    @property
    def stage_changed(self) -> bool:
        return self.stage != self.previous_stage


class MemoryScheduler:
    """
    Couples FSRS scheduling with mastery tracking.

    Usage:
        scheduler = MemoryScheduler()
        outcome = scheduler.review(state, response)
        outcome.state.stability, outcome.stage
    """

    def __init__(
        self,
        fsrs: FSRSScheduler | None = None,
        thresholds: MasteryThresholds | None = None,
    ):
        self.fsrs = fsrs or FSRSScheduler()
        self.thresholds = thresholds or MasteryThresholds.from_settings()

    def new_state(self, object_id: str, learner_id: str = "") -> MemoryState:
        return MemoryState(object_id=object_id, learner_id=learner_id)

    def rate(self, response: ResponseRecord) -> Rating:
        return rating_from_response(response, self.fsrs.params.slow_response_ms)

    def stage(self, state: MemoryState) -> int:
        return mastery_stage(state, self.thresholds)

    def review(
        self,
        state: MemoryState,
        response: ResponseRecord,
        now: datetime | None = None,
    ) -> ReviewOutcome:
        """Apply a response: rate it, schedule FSRS, update accuracies."""
        now = now or response.timestamp
        rating = self.rate(response)
        previous_stage = self.stage(state)

        scheduled = self.fsrs.schedule(state, rating, now)
        updated = update_accuracy(scheduled, response.correct, response.cue_level, self.thresholds)
        stage = self.stage(updated)

        if stage != previous_stage:
            logger.debug(f"Mastery {state.object_id}: stage {previous_stage} -> {stage}")

        return ReviewOutcome(state=updated, rating=rating, previous_stage=previous_stage, stage=stage)

    def retrievability(self, state: MemoryState, now: datetime) -> float:
        return self.fsrs.retrievability(state, now)

    def next_review_at(self, state: MemoryState) -> datetime | None:
        return self.fsrs.next_review_at(state)

    def is_due(self, state: MemoryState, now: datetime) -> bool:
        return self.fsrs.is_due(state, now)

    def recommend_cue_level(self, state: MemoryState) -> int:
        return recommend_cue_level(state)
