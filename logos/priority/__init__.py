"""
Priority Module - Value / cost scoring and ranking of candidate objects.
"""

from logos.priority.engine import (
    PriorityEngine,
    PriorityScore,
    PriorityWeights,
    RankedItem,
    compute_cost,
    compute_value,
    mastery_adjustment,
    mastery_function,
)

__all__ = [
    "PriorityEngine",
    "PriorityScore",
    "PriorityWeights",
    "RankedItem",
    "compute_cost",
    "compute_value",
    "mastery_adjustment",
    "mastery_function",
]
