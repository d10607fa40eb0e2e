"""
FSRS - Free Spaced Repetition Scheduler.

Models forgetting for one (learner, object) pair and drives the review
state machine:

    new ──first rating──> learning (Again) | review (pass)
    learning / relearning ──pass──> review
    review ──Again──> relearning

Retrievability is never stored; it is computed on demand:

    R(t) = e^(-t / S)        t = days since last review, S = stability

On a passing rating stability grows by

    S' = S * (1 + e^w8 * (11 - D) * S^-w9 * (e^((1 - R) * w10) - 1) * hard * easy)

with hard = w15 only for a Hard pass and easy = w16 only for an Easy pass.
On Again stability is recomputed from the forgetting formula

    S' = max(0.1, w11 * D^-w12 * ((S + 1)^w13 - 1))

Based on FSRS-4 (Ye, 2022) with the default 17-weight parameter set.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum, IntEnum
from typing import Any

from loguru import logger

from config import DEFAULT_FSRS_WEIGHTS, get_settings
from logos.core.clock import as_utc
from logos.core.errors import ConfigurationError
from logos.core.records import ResponseRecord

MIN_STABILITY = 0.1
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
SNAPSHOT_VERSION = 1


class Rating(IntEnum):
    """Review outcome on the four-point FSRS scale."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def passing(self) -> bool:
        return self != Rating.AGAIN


class CardState(str, Enum):
    """Review state machine states."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


@dataclass(frozen=True)
class FSRSParameters:
    """Scheduler weights and targets."""

    weights: tuple[float, ...] = tuple(DEFAULT_FSRS_WEIGHTS)
    request_retention: float = 0.9
    maximum_interval: int = 36500
    slow_response_ms: int = 5000

    def __post_init__(self) -> None:
        if len(self.weights) != 17:
            raise ConfigurationError(f"FSRS expects 17 weights, got {len(self.weights)}")
        if not 0.0 < self.request_retention < 1.0:
            raise ConfigurationError(
                f"request_retention must be in (0, 1), got {self.request_retention}"
            )
        if self.maximum_interval < 1:
            raise ConfigurationError("maximum_interval must be >= 1 day")
        if self.slow_response_ms < 0:
            raise ConfigurationError("slow_response_ms must be >= 0")

    @classmethod
    def from_settings(cls) -> FSRSParameters:
        settings = get_settings()
        return cls(
            weights=tuple(settings.fsrs_weights),
            request_retention=settings.fsrs_request_retention,
            maximum_interval=settings.fsrs_maximum_interval,
            slow_response_ms=settings.fsrs_slow_response_ms,
        )


@dataclass(frozen=True)
class MemoryState:
    """
    Memory state of one learning object for one learner.

    Mastery stage and retrievability are derived on demand and are not
    fields here. `version` is bumped by the persistence layer on every
    successful write.
    """

    object_id: str
    learner_id: str = ""
    stability: float = 0.0
    difficulty: float = 5.0
    last_review: datetime | None = None
    reps: int = 0
    lapses: int = 0
    state: CardState = CardState.NEW
    cue_free_accuracy: float = 0.0
    cue_assisted_accuracy: float = 0.0
    exposure_count: int = 0
    version: int = 0

    @property
    def scaffolding_gap(self) -> float:
        """Cue-assisted minus cue-free accuracy, floored at zero."""
        return max(0.0, self.cue_assisted_accuracy - self.cue_free_accuracy)

    @property
    def is_new(self) -> bool:
        return self.state == CardState.NEW or self.last_review is None

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly snapshot. Floats are written as-is (exact round-trip)."""
        return {
            "snapshot_version": SNAPSHOT_VERSION,
            "object_id": self.object_id,
            "learner_id": self.learner_id,
            "stability": self.stability,
            "difficulty": self.difficulty,
            "last_review": self.last_review.isoformat() if self.last_review else None,
            "reps": self.reps,
            "lapses": self.lapses,
            "state": self.state.value,
            "cue_free_accuracy": self.cue_free_accuracy,
            "cue_assisted_accuracy": self.cue_assisted_accuracy,
            "exposure_count": self.exposure_count,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryState:
        last_review = data.get("last_review")
        return cls(
            object_id=data["object_id"],
            learner_id=data.get("learner_id", ""),
            stability=float(data.get("stability", 0.0)),
            difficulty=float(data.get("difficulty", 5.0)),
            last_review=datetime.fromisoformat(last_review) if last_review else None,
            reps=int(data.get("reps", 0)),
            lapses=int(data.get("lapses", 0)),
            state=CardState(data.get("state", CardState.NEW.value)),
            cue_free_accuracy=float(data.get("cue_free_accuracy", 0.0)),
            cue_assisted_accuracy=float(data.get("cue_assisted_accuracy", 0.0)),
            exposure_count=int(data.get("exposure_count", 0)),
            version=int(data.get("version", 0)),
        )


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from start to end. Naive values are read as UTC."""
    return (as_utc(end) - as_utc(start)).total_seconds() / 86400.0


def retrievability(elapsed_days: float, stability: float) -> float:
    """
    R(t) = e^(-t / S).

    R(0) = 1 and R is non-increasing in t. Negative elapsed time (clock
    skew) is treated as zero.
    """
    t = max(0.0, elapsed_days)
    return math.exp(-t / max(stability, MIN_STABILITY))


def rating_from_response(response: ResponseRecord, slow_response_ms: int = 5000) -> Rating:
    """
    Derive the FSRS rating from a raw response.

    - incorrect                       -> Again
    - correct with any cue            -> Hard
    - correct, cue-free, slow         -> Good
    - correct, cue-free, fast         -> Easy
    """
    if not response.correct:
        return Rating.AGAIN
    if response.cue_level > 0:
        return Rating.HARD
    if response.response_time_ms > slow_response_ms:
        return Rating.GOOD
    return Rating.EASY


class FSRSScheduler:
    """
    Pure FSRS scheduler.

    Every method returns new values; MemoryState inputs are never modified.
    """

    def __init__(self, params: FSRSParameters | None = None):
        self.params = params or FSRSParameters.from_settings()
        self.w = self.params.weights

    # ------------------------------------------------------------------
    # Retrievability and intervals
    # ------------------------------------------------------------------

    def retrievability(self, state: MemoryState, now: datetime) -> float:
        """Current recall probability. Never-reviewed objects have R = 0."""
        if state.last_review is None:
            return 0.0
        return retrievability(days_between(state.last_review, now), state.stability)

    def next_interval(self, stability: float) -> int:
        """
        Days until R falls to the requested retention.

        Solving e^(-t/S) = r gives t = -S ln r. Clamped to
        [1, maximum_interval].
        """
        interval = -max(stability, MIN_STABILITY) * math.log(self.params.request_retention)
        return int(min(self.params.maximum_interval, max(1, round(interval))))

    def next_review_at(self, state: MemoryState) -> datetime | None:
        """Due timestamp, or None for objects that were never reviewed."""
        if state.last_review is None:
            return None
        return state.last_review + timedelta(days=self.next_interval(state.stability))

    def is_due(self, state: MemoryState, now: datetime) -> bool:
        due = self.next_review_at(state)
        return due is not None and as_utc(due) <= as_utc(now)

    def overdue_days(self, state: MemoryState, now: datetime) -> float:
        """Days past the due date (0 when not yet due or never reviewed)."""
        due = self.next_review_at(state)
        if due is None:
            return 0.0
        return max(0.0, days_between(due, now))

    # ------------------------------------------------------------------
    # Stability and difficulty
    # ------------------------------------------------------------------

    def initial_stability(self, rating: Rating) -> float:
        return self.w[int(rating) - 1]

    def initial_difficulty(self, rating: Rating) -> float:
        return _clamp_difficulty(self.w[4] - (int(rating) - 3) * self.w[5])

    def next_difficulty(self, difficulty: float, rating: Rating) -> float:
        """Fixed step away from the neutral (Good) rating, clamped to [1, 10]."""
        return _clamp_difficulty(difficulty - self.w[6] * (int(rating) - 3))

    def recall_stability(
        self, stability: float, difficulty: float, r: float, rating: Rating
    ) -> float:
        """Stability after a successful recall."""
        if rating == Rating.HARD:
            hard_penalty, easy_bonus = self.w[15], 1.0
        elif rating == Rating.GOOD:
            hard_penalty, easy_bonus = 1.0, 1.0
        elif rating == Rating.EASY:
            hard_penalty, easy_bonus = 1.0, self.w[16]
        else:
            raise ValueError(f"recall_stability requires a passing rating, got {rating!r}")

        s = max(stability, MIN_STABILITY)
        growth = (
            math.exp(self.w[8])
            * (11.0 - difficulty)
            * math.pow(s, -self.w[9])
            * (math.exp((1.0 - r) * self.w[10]) - 1.0)
            * hard_penalty
            * easy_bonus
        )
        return s * (1.0 + growth)

    def forget_stability(self, stability: float, difficulty: float) -> float:
        """Stability after a lapse."""
        s = max(stability, 0.0)
        new_s = (
            self.w[11]
            * math.pow(difficulty, -self.w[12])
            * (math.pow(s + 1.0, self.w[13]) - 1.0)
        )
        return max(MIN_STABILITY, new_s)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def schedule(self, state: MemoryState, rating: Rating, now: datetime) -> MemoryState:
        """
        Apply one review and return the new state.

        Mastery accuracies are left untouched; see MemoryScheduler.
        """
        rating = Rating(rating)

        if state.is_new:
            new_state = replace(
                state,
                stability=self.initial_stability(rating),
                difficulty=self.initial_difficulty(rating),
                state=CardState.LEARNING if rating == Rating.AGAIN else CardState.REVIEW,
                last_review=now,
                reps=state.reps + 1,
            )
        else:
            r = self.retrievability(state, now)
            if rating.passing:
                stability = self.recall_stability(state.stability, state.difficulty, r, rating)
                next_card_state = CardState.REVIEW
                lapses = state.lapses
            else:
                stability = self.forget_stability(state.stability, state.difficulty)
                lapses = state.lapses + 1
                if state.state == CardState.LEARNING:
                    next_card_state = CardState.LEARNING
                else:
                    next_card_state = CardState.RELEARNING

            new_state = replace(
                state,
                stability=stability,
                difficulty=self.next_difficulty(state.difficulty, rating),
                state=next_card_state,
                last_review=now,
                reps=state.reps + 1,
                lapses=lapses,
            )

        logger.debug(
            f"FSRS {state.object_id}: {state.state.value} -> {new_state.state.value} "
            f"rating={rating.name} S={state.stability:.3f}->{new_state.stability:.3f} "
            f"D={new_state.difficulty:.2f}"
        )
        return new_state


def _clamp_difficulty(d: float) -> float:
    return min(MAX_DIFFICULTY, max(MIN_DIFFICULTY, d))
