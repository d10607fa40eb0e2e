"""
Item Response Theory - Ability Estimation.

Implements the logistic IRT family used to estimate learner ability
(theta) per linguistic component:

    P(theta) = c + (1 - c) / (1 + exp(-a * (theta - b)))

1PL: a = 1, c = 0
2PL: c = 0
3PL: all three parameters

Estimation:
- MLE: Newton-Raphson (Fisher scoring) on the response log-likelihood.
  Degenerate response sets (all correct / all incorrect) have no interior
  maximum and are clamped to the theta bounds as boundary estimates.
- EAP: posterior mean over a normal prior by fixed-grid quadrature.
  Used when there are too few responses for a stable MLE.

Item selection maximizes Fisher information at the current theta.

Based on:
- Lord (1980), Applications of Item Response Theory
- Bock & Mislevy (1982), EAP estimation
- Baker & Kim (2004), Item Response Theory: Parameter Estimation Techniques
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

import numpy as np
from loguru import logger

from config import get_settings
from logos.core.errors import ConfigurationError

PROBABILITY_EPSILON = 1e-12
MAX_NEWTON_STEP = 1.0


class IRTModel(str, Enum):
    """Logistic model family implied by an item's parameters."""

    ONE_PL = "1PL"
    TWO_PL = "2PL"
    THREE_PL = "3PL"


class EstimationMethod(str, Enum):
    """Ability estimation method."""

    MLE = "mle"
    EAP = "eap"
    AUTO = "auto"  # EAP for short/degenerate histories, MLE otherwise


@dataclass(frozen=True)
class IRTConfig:
    """Estimator configuration. Invalid values are fatal at construction."""

    theta_min: float = -4.0
    theta_max: float = 4.0
    max_iterations: int = 50
    tolerance: float = 1e-6
    min_responses: int = 5
    prior_mean: float = 0.0
    prior_sd: float = 1.0
    quadrature_points: int = 81
    max_standard_error: float = 4.0

    def __post_init__(self) -> None:
        if self.theta_min >= self.theta_max:
            raise ConfigurationError(
                f"theta bounds must be increasing, got [{self.theta_min}, {self.theta_max}]"
            )
        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be >= 1")
        if self.tolerance <= 0:
            raise ConfigurationError("tolerance must be positive")
        if self.prior_sd <= 0:
            raise ConfigurationError("prior_sd must be positive")
        if self.quadrature_points < 3:
            raise ConfigurationError("quadrature_points must be >= 3")
        if self.max_standard_error <= 0:
            raise ConfigurationError("max_standard_error must be positive")

    @classmethod
    def from_settings(cls) -> IRTConfig:
        return cls(**get_settings().get_irt_config())

    def clamp(self, theta: float) -> float:
        return max(self.theta_min, min(self.theta_max, theta))


@dataclass(frozen=True)
class ItemParameters:
    """
    Psychometric parameters of one item.

    Attributes:
        item_id: Item identifier
        a: Discrimination (slope), must be positive
        b: Difficulty (logit scale, typically -3 to +3)
        c: Pseudo-guessing lower asymptote, in [0, 1)
    """

    item_id: str = ""
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0

    def __post_init__(self) -> None:
        for name in ("a", "b", "c"):
            if not math.isfinite(getattr(self, name)):
                raise ConfigurationError(f"Item {self.item_id!r}: parameter {name} must be finite")
        if self.a <= 0:
            raise ConfigurationError(
                f"Item {self.item_id!r}: discrimination must be positive, got {self.a}"
            )
        if not 0.0 <= self.c < 1.0:
            raise ConfigurationError(
                f"Item {self.item_id!r}: guessing parameter must be in [0, 1), got {self.c}"
            )

    @property
    def model(self) -> IRTModel:
        if self.c > 0:
            return IRTModel.THREE_PL
        if self.a != 1.0:
            return IRTModel.TWO_PL
        return IRTModel.ONE_PL

    def probability(self, theta: float) -> float:
        return item_probability(theta, self.a, self.b, self.c)

    def information(self, theta: float) -> float:
        return fisher_information(theta, self)


@dataclass(frozen=True)
class ItemResponse:
    """One scored response against a calibrated item."""

    item: ItemParameters
    correct: bool
    timestamp: datetime | None = None


@dataclass(frozen=True)
class AbilityEstimate:
    """
    Result of an ability estimation.

    Attributes:
        theta: Ability estimate (logit scale)
        standard_error: Standard error of the estimate
        method: Method that produced the estimate
        n_responses: Number of responses used
        converged: Whether the iterative method converged
        boundary: True if theta was clamped to a bound (degenerate MLE)
        iterations: Newton iterations used (0 for EAP / prior)
        low_confidence: Too little data or a boundary / non-converged result
    """

    theta: float
    standard_error: float
    method: EstimationMethod
    n_responses: int = 0
    converged: bool = True
    boundary: bool = False
    iterations: int = 0
    low_confidence: bool = False

    @property
    def insufficient_data(self) -> bool:
        return self.n_responses == 0 or (self.low_confidence and not self.boundary)

    def to_dict(self) -> dict:
        return {
            "theta": self.theta,
            "standard_error": self.standard_error,
            "method": self.method.value,
            "n_responses": self.n_responses,
            "converged": self.converged,
            "boundary": self.boundary,
            "iterations": self.iterations,
            "low_confidence": self.low_confidence,
        }

    @classmethod
    def from_dict(cls, data: dict) -> AbilityEstimate:
        return cls(
            theta=float(data["theta"]),
            standard_error=float(data["standard_error"]),
            method=EstimationMethod(data["method"]),
            n_responses=int(data.get("n_responses", 0)),
            converged=bool(data.get("converged", True)),
            boundary=bool(data.get("boundary", False)),
            iterations=int(data.get("iterations", 0)),
            low_confidence=bool(data.get("low_confidence", False)),
        )


# =============================================================================
# PROBABILITY AND INFORMATION
# =============================================================================


def _logistic(z: float) -> float:
    """Overflow-safe logistic function."""
    if z >= 0:
        return 1.0 / (1.0 + math.exp(-z))
    e = math.exp(z)
    return e / (1.0 + e)


def item_probability(theta: float, a: float = 1.0, b: float = 0.0, c: float = 0.0) -> float:
    """
    Probability of a correct response.

    P = c + (1 - c) / (1 + e^(-a(theta - b)))

    Strictly increasing in theta for a > 0.
    """
    return c + (1.0 - c) * _logistic(a * (theta - b))


def probability_1pl(theta: float, b: float) -> float:
    """Rasch model: unit discrimination, no guessing."""
    return item_probability(theta, 1.0, b, 0.0)


def probability_2pl(theta: float, a: float, b: float) -> float:
    return item_probability(theta, a, b, 0.0)


def probability_3pl(theta: float, a: float, b: float, c: float) -> float:
    return item_probability(theta, a, b, c)


def fisher_information(theta: float, item: ItemParameters) -> float:
    """
    Fisher information of an item at theta.

    3PL form: I = a^2 (P - c)^2 Q / ((1 - c)^2 P)
    which reduces to a^2 P Q for c = 0.
    """
    p = item.probability(theta)
    if p <= item.c or p >= 1.0:
        return 0.0
    q = 1.0 - p
    return (item.a ** 2) * ((p - item.c) ** 2) * q / (((1.0 - item.c) ** 2) * p)


def total_information(items: Iterable[ItemParameters], theta: float) -> float:
    """Sum of item informations at theta."""
    return sum(fisher_information(theta, item) for item in items)


def standard_error(items: Iterable[ItemParameters], theta: float, max_se: float = 4.0) -> float:
    """SE = 1 / sqrt(I(theta)), capped at max_se when information vanishes."""
    info = total_information(items, theta)
    if info <= 0:
        return max_se
    return min(max_se, 1.0 / math.sqrt(info))


# =============================================================================
# ESTIMATION
# =============================================================================


def prior_estimate(config: IRTConfig, method: EstimationMethod) -> AbilityEstimate:
    """Documented default for an empty history: prior mean, maximal SE."""
    return AbilityEstimate(
        theta=config.prior_mean,
        standard_error=config.max_standard_error,
        method=method,
        n_responses=0,
        converged=True,
        boundary=False,
        iterations=0,
        low_confidence=True,
    )


def is_degenerate(responses: Sequence[ItemResponse]) -> bool:
    """All correct or all incorrect: the likelihood has no interior maximum."""
    outcomes = {r.correct for r in responses}
    return len(outcomes) == 1


def estimate_mle(responses: Sequence[ItemResponse], config: IRTConfig | None = None) -> AbilityEstimate:
    """
    Maximum likelihood estimate via Newton-Raphson (Fisher scoring).

    Score:       sum a (u - P)(P - c) / (P (1 - c))
    Information: sum a^2 (P - c)^2 Q / ((1 - c)^2 P)

    Steps are limited to MAX_NEWTON_STEP and theta is clamped to the
    configured bounds. Degenerate or non-converging runs return a flagged
    boundary / low-confidence estimate instead of diverging.
    """
    config = config or IRTConfig.from_settings()
    n = len(responses)
    if n == 0:
        return prior_estimate(config, EstimationMethod.MLE)

    items = [r.item for r in responses]

    if is_degenerate(responses):
        theta = config.theta_max if responses[0].correct else config.theta_min
        logger.warning(
            f"MLE degenerate ({'all correct' if responses[0].correct else 'all incorrect'}, "
            f"n={n}); clamped to boundary theta={theta}"
        )
        return AbilityEstimate(
            theta=theta,
            standard_error=standard_error(items, theta, config.max_standard_error),
            method=EstimationMethod.MLE,
            n_responses=n,
            converged=False,
            boundary=True,
            iterations=0,
            low_confidence=True,
        )

    theta = config.clamp(config.prior_mean)
    converged = False
    iterations = 0

    for iteration in range(1, config.max_iterations + 1):
        iterations = iteration
        score = 0.0
        info = 0.0
        for r in responses:
            item = r.item
            p = min(max(item.probability(theta), PROBABILITY_EPSILON), 1.0 - PROBABILITY_EPSILON)
            u = 1.0 if r.correct else 0.0
            score += item.a * (u - p) * (p - item.c) / (p * (1.0 - item.c))
            info += fisher_information(theta, item)

        if info < PROBABILITY_EPSILON:
            logger.debug(f"MLE information vanished at theta={theta:.4f}")
            break

        step = score / info
        step = max(-MAX_NEWTON_STEP, min(MAX_NEWTON_STEP, step))
        new_theta = config.clamp(theta + step)
        delta = new_theta - theta
        theta = new_theta

        if abs(delta) < config.tolerance:
            converged = True
            break

    at_bound = theta <= config.theta_min + config.tolerance or theta >= config.theta_max - config.tolerance
    if not converged or at_bound:
        logger.warning(
            f"MLE {'did not converge' if not converged else 'reached bound'} "
            f"after {iterations} iterations (theta={theta:.4f}, n={n})"
        )

    se = standard_error(items, theta, config.max_standard_error)
    logger.debug(f"MLE theta={theta:.4f} se={se:.4f} iterations={iterations}")

    return AbilityEstimate(
        theta=theta,
        standard_error=se,
        method=EstimationMethod.MLE,
        n_responses=n,
        converged=converged,
        boundary=at_bound,
        iterations=iterations,
        low_confidence=(not converged) or at_bound or n < config.min_responses,
    )


def estimate_eap(responses: Sequence[ItemResponse], config: IRTConfig | None = None) -> AbilityEstimate:
    """
    Expected a posteriori estimate.

    Posterior over a fixed quadrature grid on [theta_min, theta_max]
    with a normal prior N(prior_mean, prior_sd). Returns the posterior
    mean and the posterior standard deviation as SE.
    """
    config = config or IRTConfig.from_settings()
    n = len(responses)
    if n == 0:
        return prior_estimate(config, EstimationMethod.EAP)

    nodes = np.linspace(config.theta_min, config.theta_max, config.quadrature_points)
    log_posterior = -0.5 * ((nodes - config.prior_mean) / config.prior_sd) ** 2

    for r in responses:
        item = r.item
        z = np.clip(item.a * (nodes - item.b), -500.0, 500.0)
        p = item.c + (1.0 - item.c) / (1.0 + np.exp(-z))
        p = np.clip(p, PROBABILITY_EPSILON, 1.0 - PROBABILITY_EPSILON)
        log_posterior += np.log(p) if r.correct else np.log(1.0 - p)

    log_posterior -= log_posterior.max()
    weights = np.exp(log_posterior)
    weights /= weights.sum()

    theta = float(np.sum(nodes * weights))
    variance = float(np.sum((nodes - theta) ** 2 * weights))
    se = min(config.max_standard_error, math.sqrt(max(variance, 0.0)))

    logger.debug(f"EAP theta={theta:.4f} se={se:.4f} n={n}")

    return AbilityEstimate(
        theta=theta,
        standard_error=se,
        method=EstimationMethod.EAP,
        n_responses=n,
        converged=True,
        boundary=False,
        iterations=0,
        low_confidence=n < config.min_responses,
    )


def estimate_ability(
    responses: Sequence[ItemResponse],
    method: EstimationMethod = EstimationMethod.MLE,
    config: IRTConfig | None = None,
) -> AbilityEstimate:
    """
    Estimate ability from a response history.

    Zero responses return the prior default (theta = prior mean, maximal SE)
    flagged low-confidence. AUTO uses EAP while the history is shorter than
    `min_responses` or degenerate, MLE otherwise.
    """
    config = config or IRTConfig.from_settings()
    method = EstimationMethod(method)

    if not responses:
        return prior_estimate(config, method)

    if method == EstimationMethod.AUTO:
        if len(responses) < config.min_responses or is_degenerate(responses):
            return estimate_eap(responses, config)
        return estimate_mle(responses, config)
    if method == EstimationMethod.EAP:
        return estimate_eap(responses, config)
    return estimate_mle(responses, config)


def select_next_item(
    candidates: Sequence[ItemParameters],
    theta: float,
    exclude: Iterable[str] = (),
) -> ItemParameters | None:
    """
    Pick the candidate with maximum Fisher information at theta.

    Items far from theta carry near-zero information and lose to
    well-targeted ones. Ties keep candidate order. Returns None when no
    candidate is eligible.
    """
    excluded = set(exclude)
    best: ItemParameters | None = None
    best_info = -1.0
    for item in candidates:
        if item.item_id and item.item_id in excluded:
            continue
        info = fisher_information(theta, item)
        if info > best_info:
            best, best_info = item, info
    if best is not None:
        logger.debug(f"Selected item {best.item_id!r} (I={best_info:.4f}) at theta={theta:.3f}")
    return best


@dataclass(frozen=True)
class LevelWeights:
    """Value weights suited to a proficiency level."""

    frequency: float
    relational: float
    contextual: float


LEVEL_WEIGHTS = {
    "beginner": LevelWeights(frequency=0.5, relational=0.25, contextual=0.25),
    "intermediate": LevelWeights(frequency=0.4, relational=0.3, contextual=0.3),
    "advanced": LevelWeights(frequency=0.3, relational=0.3, contextual=0.4),
}


def infer_level(theta: float) -> str:
    """Map theta to a coarse proficiency level."""
    if theta < -1:
        return "beginner"
    if theta < 1:
        return "intermediate"
    return "advanced"


__all__ = [
    "AbilityEstimate",
    "EstimationMethod",
    "IRTConfig",
    "IRTModel",
    "ItemParameters",
    "ItemResponse",
    "LEVEL_WEIGHTS",
    "LevelWeights",
    "estimate_ability",
    "estimate_eap",
    "estimate_mle",
    "fisher_information",
    "infer_level",
    "is_degenerate",
    "item_probability",
    "prior_estimate",
    "probability_1pl",
    "probability_2pl",
    "probability_3pl",
    "select_next_item",
    "standard_error",
    "total_information",
]
