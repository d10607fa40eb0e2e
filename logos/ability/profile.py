"""
Per-learner, per-component ability profiles.

A profile is an append-only response history plus the estimate recomputed
from it. Recording a response returns a new profile; the old one is left
untouched so callers can discard the update if persistence fails.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger

from logos.ability.irt import (
    AbilityEstimate,
    EstimationMethod,
    IRTConfig,
    ItemParameters,
    ItemResponse,
    estimate_ability,
    prior_estimate,
    select_next_item,
)
from logos.core.components import ComponentType
from logos.core.records import ResponseRecord


@dataclass(frozen=True)
class AbilityProfile:
    """Ability state for one (learner, component) pair."""

    learner_id: str
    component: ComponentType
    history: tuple[ItemResponse, ...] = ()
    estimate: AbilityEstimate = field(
        default_factory=lambda: AbilityEstimate(
            theta=0.0, standard_error=4.0, method=EstimationMethod.AUTO, low_confidence=True
        )
    )
    version: int = 0

    @property
    def theta(self) -> float:
        return self.estimate.theta

    @property
    def standard_error(self) -> float:
        return self.estimate.standard_error

    @property
    def used_item_ids(self) -> set[str]:
        return {r.item.item_id for r in self.history if r.item.item_id}

    def to_dict(self) -> dict[str, Any]:
        return {
            "learner_id": self.learner_id,
            "component": self.component.value,
            "history": [
                {
                    "item_id": r.item.item_id,
                    "a": r.item.a,
                    "b": r.item.b,
                    "c": r.item.c,
                    "correct": r.correct,
                    "timestamp": r.timestamp.isoformat() if r.timestamp else None,
                }
                for r in self.history
            ],
            "estimate": self.estimate.to_dict(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AbilityProfile:
        history = tuple(
            ItemResponse(
                item=ItemParameters(
                    item_id=entry.get("item_id", ""),
                    a=float(entry["a"]),
                    b=float(entry["b"]),
                    c=float(entry.get("c", 0.0)),
                ),
                correct=bool(entry["correct"]),
                timestamp=datetime.fromisoformat(entry["timestamp"]) if entry.get("timestamp") else None,
            )
            for entry in data.get("history", [])
        )
        return cls(
            learner_id=data["learner_id"],
            component=ComponentType(data["component"]),
            history=history,
            estimate=AbilityEstimate.from_dict(data["estimate"]),
            version=int(data.get("version", 0)),
        )


class AbilityEstimator:
    """
    Builds and updates ability profiles.

    The estimate on a profile is always a recomputation over its full
    history with this estimator's method and configuration.
    """

    def __init__(
        self,
        config: IRTConfig | None = None,
        method: EstimationMethod = EstimationMethod.AUTO,
    ):
        self.config = config or IRTConfig.from_settings()
        self.method = EstimationMethod(method)

    def new_profile(self, learner_id: str, component: ComponentType) -> AbilityProfile:
        return AbilityProfile(
            learner_id=learner_id,
            component=ComponentType(component),
            estimate=prior_estimate(self.config, self.method),
        )

    def estimate(
        self,
        responses: list[ItemResponse] | tuple[ItemResponse, ...],
        method: EstimationMethod | None = None,
    ) -> AbilityEstimate:
        return estimate_ability(responses, method or self.method, self.config)

    def recompute(self, profile: AbilityProfile) -> AbilityProfile:
        """Re-derive the estimate from the profile's history."""
        return AbilityProfile(
            learner_id=profile.learner_id,
            component=profile.component,
            history=profile.history,
            estimate=self.estimate(profile.history),
            version=profile.version,
        )

    def record(
        self,
        profile: AbilityProfile,
        item: ItemParameters,
        correct: bool,
        timestamp: datetime | None = None,
    ) -> AbilityProfile:
        """Append one scored response and return the updated profile."""
        history = profile.history + (ItemResponse(item=item, correct=correct, timestamp=timestamp),)
        estimate = self.estimate(history)

        logger.debug(
            f"Ability {profile.learner_id}/{profile.component.value}: "
            f"theta {profile.theta:.3f} -> {estimate.theta:.3f} "
            f"(se={estimate.standard_error:.3f}, n={len(history)}, {estimate.method.value})"
        )
        if estimate.low_confidence:
            logger.debug(
                f"Ability {profile.learner_id}/{profile.component.value} is low-confidence "
                f"(n={len(history)}, boundary={estimate.boundary})"
            )

        return AbilityProfile(
            learner_id=profile.learner_id,
            component=profile.component,
            history=history,
            estimate=estimate,
            version=profile.version,
        )

    def record_response(
        self,
        profile: AbilityProfile,
        response: ResponseRecord,
        item: ItemParameters,
    ) -> AbilityProfile:
        """Record a validated response record against its item parameters."""
        return self.record(profile, item, response.correct, response.timestamp)

    def select_next_item(
        self,
        profile: AbilityProfile,
        candidates: list[ItemParameters],
        allow_repeats: bool = False,
    ) -> ItemParameters | None:
        """Most informative candidate at the profile's current theta."""
        exclude = () if allow_repeats else profile.used_item_ids
        return select_next_item(candidates, profile.theta, exclude=exclude)
