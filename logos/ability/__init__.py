"""
Ability Module - IRT ability estimation and adaptive item selection.
"""

from logos.ability.irt import (
    LEVEL_WEIGHTS,
    AbilityEstimate,
    EstimationMethod,
    IRTConfig,
    IRTModel,
    ItemParameters,
    ItemResponse,
    estimate_ability,
    estimate_eap,
    estimate_mle,
    fisher_information,
    infer_level,
    item_probability,
    select_next_item,
    standard_error,
    total_information,
)
from logos.ability.profile import AbilityEstimator, AbilityProfile

__all__ = [
    # IRT
    "AbilityEstimate",
    "EstimationMethod",
    "IRTConfig",
    "IRTModel",
    "ItemParameters",
    "ItemResponse",
    "LEVEL_WEIGHTS",
    "estimate_ability",
    "estimate_eap",
    "estimate_mle",
    "fisher_information",
    "infer_level",
    "item_probability",
    "select_next_item",
    "standard_error",
    "total_information",
    # Profiles
    "AbilityEstimator",
    "AbilityProfile",
]
