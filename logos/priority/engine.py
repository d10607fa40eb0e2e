"""
Priority Engine - ranks candidate learning objects.

Formula:
    Value   = w_f·F + w_r·R + w_e·E
    Cost    = max(floor, w_d·D - w_t·T + w_x·X)
    Score   = (Value / Cost) · g(m) · (1 + U)

Where:
    F = normalized frequency
    R = relational density (mean positive NPMI of significant collocations)
    E = contextual / domain relevance
    D = base difficulty mapped from the logit scale [-3, 3] to [0, 1]
    T = transfer gain (mean mastery of related objects)
    X = exposure need (under-exposure and ability gap)
    g = mastery adjustment, peaks inside the zone of proximal development
    U = urgency from retrievability and overdue time

Ranking is descending by score. Ties break by earlier due date (never
reviewed last), then lower mastery stage, then original candidate order.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from loguru import logger

from config import get_settings
from logos.ability.irt import LEVEL_WEIGHTS, infer_level
from logos.collocation.builder import tokenize
from logos.collocation.pmi import CollocationIndex
from logos.core.clock import as_utc, utc_now
from logos.core.components import ComponentType
from logos.core.errors import ConfigurationError
from logos.core.records import CandidateObject, parse_candidate
from logos.memory.fsrs import MemoryState
from logos.memory.mastery import MemoryScheduler

# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass(frozen=True)
class PriorityWeights:
    """Value and cost weights."""

    frequency: float = 0.4
    relational: float = 0.3
    contextual: float = 0.3
    difficulty: float = 1.0
    transfer: float = 0.5
    exposure: float = 0.5
    cost_floor: float = 0.1
    new_item_urgency: float = 0.5
    exposure_target: int = 8

    def __post_init__(self) -> None:
        for name in ("frequency", "relational", "contextual", "difficulty", "transfer", "exposure"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"Priority weight {name} must be >= 0")
        if self.cost_floor <= 0:
            raise ConfigurationError("cost_floor must be positive")
        if self.new_item_urgency < 0:
            raise ConfigurationError("new_item_urgency must be >= 0")
        if self.exposure_target < 1:
            raise ConfigurationError("exposure_target must be >= 1")

    @classmethod
    def from_settings(cls) -> PriorityWeights:
        settings = get_settings()
        return cls(
            **settings.get_priority_weights(),
            cost_floor=settings.priority_cost_floor,
            new_item_urgency=settings.priority_new_item_urgency,
            exposure_target=settings.priority_exposure_target,
        )

    def for_level(self, level: str) -> PriorityWeights:
        """Value weights adjusted to a proficiency level."""
        level_weights = LEVEL_WEIGHTS.get(level)
        if level_weights is None:
            return self
        return replace(
            self,
            frequency=level_weights.frequency,
            relational=level_weights.relational,
            contextual=level_weights.contextual,
        )

    def for_theta(self, theta: float) -> PriorityWeights:
        return self.for_level(infer_level(theta))


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass(frozen=True)
class PriorityScore:
    """Every input and intermediate that produced a score."""

    object_id: str
    frequency: float
    relational_density: float
    contextual_relevance: float
    value: float
    difficulty: float
    transfer_gain: float
    exposure_need: float
    raw_cost: float
    cost: float
    mastery_adjustment: float
    urgency: float
    score: float
    stage: int = 0
    due_at: datetime | None = None
    due_for_review: bool = False
    is_new: bool = True

    @property
    def context_modifier(self) -> float:
        return 1.0 + self.urgency

    def to_dict(self) -> dict[str, Any]:
        return {
            "object_id": self.object_id,
            "frequency": round(self.frequency, 4),
            "relational_density": round(self.relational_density, 4),
            "contextual_relevance": round(self.contextual_relevance, 4),
            "value": round(self.value, 4),
            "difficulty": round(self.difficulty, 4),
            "transfer_gain": round(self.transfer_gain, 4),
            "exposure_need": round(self.exposure_need, 4),
            "cost": round(self.cost, 4),
            "mastery_adjustment": round(self.mastery_adjustment, 4),
            "urgency": round(self.urgency, 4),
            "score": round(self.score, 6),
            "stage": self.stage,
            "due_at": self.due_at.isoformat() if self.due_at else None,
            "due_for_review": self.due_for_review,
        }


@dataclass(frozen=True)
class RankedItem:
    """Engine output for the task/content layer."""

    object_id: str
    score: float
    due_for_review: bool
    breakdown: PriorityScore

    def to_dict(self) -> dict[str, Any]:
        return {"object_id": self.object_id, "score": self.score, "due_for_review": self.due_for_review}


# =============================================================================
# SCORING FUNCTIONS
# =============================================================================


def _unit(x: float) -> float:
    return max(0.0, min(1.0, x))


def mastery_function(mastery: float) -> float:
    """
    g(m) over a 0..1 mastery estimate.

    0.5 below 0.2 (foundation lacking), rising from 0.8 to a 1.0 peak at
    0.45, back to 0.8 at 0.7, down to 0.3 at 0.9, and 0.3 beyond.
    """
    if mastery < 0.2:
        return 0.5
    if mastery <= 0.45:
        return 0.8 + (mastery - 0.2) * (0.2 / 0.25)
    if mastery <= 0.7:
        return 1.0 - (mastery - 0.45) * (0.2 / 0.25)
    if mastery <= 0.9:
        return 0.8 - (mastery - 0.7) * (0.5 / 0.2)
    return 0.3


def mastery_adjustment(stage: int, cue_free_accuracy: float, scaffolding_gap: float) -> float:
    """g(m) with m = (stage/4 + cue-free accuracy) / 2, boosted by the scaffolding gap."""
    mastery = (stage / 4.0 + _unit(cue_free_accuracy)) / 2.0
    return mastery_function(mastery) * (1.0 + 0.5 * max(0.0, scaffolding_gap))


def compute_value(frequency: float, relational: float, contextual: float, weights: PriorityWeights) -> float:
    return (
        weights.frequency * _unit(frequency)
        + weights.relational * _unit(relational)
        + weights.contextual * _unit(contextual)
    )


def compute_cost(
    difficulty: float, transfer_gain: float, exposure_need: float, weights: PriorityWeights
) -> tuple[float, float]:
    """Return (raw cost, floored cost). Only the floored cost is ever divided by."""
    raw = (
        weights.difficulty * _unit(difficulty)
        - weights.transfer * _unit(transfer_gain)
        + weights.exposure * _unit(exposure_need)
    )
    return raw, max(weights.cost_floor, raw)


def normalize_difficulty(base_difficulty: float) -> float:
    """Logit difficulty (-3..3) to 0..1."""
    return _unit((base_difficulty + 3.0) / 6.0)


def exposure_need(exposures: int, base_difficulty: float, theta: float, target: int) -> float:
    """
    Average of under-exposure (1 at zero exposures, 0 at the target) and
    the ability gap (difficulty above theta, saturating at 3 logits).
    """
    under_exposure = _unit(1.0 - exposures / target)
    ability_gap = _unit(max(0.0, base_difficulty - theta) / 3.0)
    return (under_exposure + ability_gap) / 2.0


# =============================================================================
# PRIORITY ENGINE
# =============================================================================


class PriorityEngine:
    """
    Scores and ranks candidate objects.

    Usage:
        engine = PriorityEngine(collocations=index)
        ranked = engine.rank(candidates, memory_states, now)
    """

    def __init__(
        self,
        weights: PriorityWeights | None = None,
        scheduler: MemoryScheduler | None = None,
        collocations: CollocationIndex | None = None,
        adapt_to_level: bool = False,
    ):
        self.weights = weights or PriorityWeights.from_settings()
        self.scheduler = scheduler or MemoryScheduler()
        self.collocations = collocations
        self.adapt_to_level = adapt_to_level

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def relational_density(self, candidate: CandidateObject) -> float:
        """Collocation-derived density, else the supplied value, else 0."""
        if self.collocations is not None and candidate.content:
            densities = [
                d for d in (self.collocations.relational_density(t) for t in tokenize(candidate.content))
                if d is not None
            ]
            if densities:
                return sum(densities) / len(densities)
        if candidate.relational_density is not None:
            return candidate.relational_density
        return 0.0

    @staticmethod
    def contextual_relevance(candidate: CandidateObject, target_domains: Collection[str] = ()) -> float:
        """Supplied relevance, else the share of the candidate's tags in the target domains."""
        if candidate.contextual_relevance is not None:
            return candidate.contextual_relevance
        if not candidate.domain_tags or not target_domains:
            return 0.0
        targets = {d.lower() for d in target_domains}
        hits = sum(1 for tag in candidate.domain_tags if tag.lower() in targets)
        return hits / len(candidate.domain_tags)

    def transfer_gain(self, candidate: CandidateObject, memory_states: Mapping[str, MemoryState]) -> float:
        """Mean mastery (stage / 4) of the candidate's related objects; unknown ones count 0."""
        related = [rid for rid in candidate.related_object_ids if rid != candidate.object_id]
        if not related:
            return 0.0
        total = 0.0
        for rid in related:
            state = memory_states.get(rid)
            if state is not None:
                total += self.scheduler.stage(state) / 4.0
        return total / len(related)

    def urgency(self, state: MemoryState | None, now: datetime) -> float:
        """
        1 - R plus half a point per overdue day (capped at 2).

        Never-reviewed objects get the fixed introduction urgency.
        """
        if state is None or state.last_review is None:
            return self.weights.new_item_urgency
        r = self.scheduler.retrievability(state, now)
        overdue = self.scheduler.fsrs.overdue_days(state, now)
        return max(0.0, 1.0 - r) + min(2.0, 0.5 * overdue)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score(
        self,
        candidate: CandidateObject | dict,
        memory_states: Mapping[str, MemoryState],
        now: datetime,
        theta: float = 0.0,
        target_domains: Collection[str] = (),
    ) -> PriorityScore:
        """Score one candidate. Pure: reads only its arguments."""
        candidate = parse_candidate(candidate)
        weights = self.weights.for_theta(theta) if self.adapt_to_level else self.weights
        state = memory_states.get(candidate.object_id)

        frequency = candidate.normalized_frequency
        relational = self.relational_density(candidate)
        contextual = self.contextual_relevance(candidate, target_domains)
        value = compute_value(frequency, relational, contextual, weights)

        difficulty = normalize_difficulty(candidate.base_difficulty)
        transfer = self.transfer_gain(candidate, memory_states)
        exposures = state.exposure_count if state is not None else 0
        need = exposure_need(exposures, candidate.base_difficulty, theta, weights.exposure_target)
        raw_cost, cost = compute_cost(difficulty, transfer, need, weights)

        if state is not None and state.exposure_count > 0:
            stage = self.scheduler.stage(state)
            adjustment = mastery_adjustment(
                stage, state.cue_free_accuracy, state.cue_assisted_accuracy - state.cue_free_accuracy
            )
        else:
            stage = 0
            adjustment = 1.0

        urgency = self.urgency(state, now)
        due_at = self.scheduler.next_review_at(state) if state is not None else None

        score = max(0.0, (value / cost) * adjustment * (1.0 + urgency))

        return PriorityScore(
            object_id=candidate.object_id,
            frequency=frequency,
            relational_density=relational,
            contextual_relevance=contextual,
            value=value,
            difficulty=difficulty,
            transfer_gain=transfer,
            exposure_need=need,
            raw_cost=raw_cost,
            cost=cost,
            mastery_adjustment=adjustment,
            urgency=urgency,
            score=score,
            stage=stage,
            due_at=due_at,
            due_for_review=due_at is not None and as_utc(due_at) <= as_utc(now),
            is_new=state is None or state.last_review is None,
        )

    def rank(
        self,
        candidates: Sequence[CandidateObject | dict],
        memory_states: Mapping[str, MemoryState] | None = None,
        now: datetime | None = None,
        abilities: Mapping[ComponentType, float] | None = None,
        target_domains: Collection[str] = (),
        limit: int | None = None,
    ) -> list[RankedItem]:
        """
        Rank candidates, best first.

        Candidates are validated up front so a malformed one rejects the
        whole request.
        """
        memory_states = memory_states or {}
        abilities = abilities or {}
        now = now or utc_now()
        parsed = [parse_candidate(c) for c in candidates]

        scored = [
            (
                index,
                self.score(
                    candidate,
                    memory_states,
                    now,
                    theta=abilities.get(candidate.component, 0.0),
                    target_domains=target_domains,
                ),
            )
            for index, candidate in enumerate(parsed)
        ]
        scored.sort(key=lambda pair: _sort_key(pair[1], pair[0]))

        ranked = [
            RankedItem(object_id=s.object_id, score=s.score, due_for_review=s.due_for_review, breakdown=s)
            for _, s in scored
        ]
        logger.debug(f"Ranked {len(ranked)} candidates")
        return ranked[:limit] if limit is not None else ranked

    @staticmethod
    def select_session(
        ranked: Sequence[RankedItem],
        size: int,
        new_item_ratio: float = 0.3,
    ) -> list[RankedItem]:
        """
        Mix due reviews and new introductions for one session.

        At most floor(size * new_item_ratio) new items; due reviews fill the
        rest, then any remaining slots are topped up in rank order. The
        result keeps rank order.
        """
        if size <= 0:
            return []
        max_new = int(size * _unit(new_item_ratio))
        max_due = size - max_new

        due = [item for item in ranked if item.due_for_review][:max_due]
        new = [item for item in ranked if item.breakdown.is_new][:max_new]
        chosen = {item.object_id for item in due + new}
        for item in ranked:
            if len(chosen) >= size:
                break
            chosen.add(item.object_id)

        return [item for item in ranked if item.object_id in chosen][:size]


def _sort_key(score: PriorityScore, index: int) -> tuple:
    if score.due_at is None:
        due_key = (1, 0.0)
    else:
        due_key = (0, as_utc(score.due_at).timestamp())
    return (-score.score, due_key, score.stage, index)
