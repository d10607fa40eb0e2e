"""
Memory Module - Forgetting model, review scheduling and mastery stages.
"""

from logos.memory.fsrs import (
    CardState,
    FSRSParameters,
    FSRSScheduler,
    MemoryState,
    Rating,
    rating_from_response,
    retrievability,
)
from logos.memory.mastery import (
    MasteryThresholds,
    MemoryScheduler,
    ReviewOutcome,
    classify_stage,
    mastery_stage,
    recommend_cue_level,
    update_accuracy,
)

__all__ = [
    # FSRS
    "CardState",
    "FSRSParameters",
    "FSRSScheduler",
    "MemoryState",
    "Rating",
    "rating_from_response",
    "retrievability",
    # Mastery
    "MasteryThresholds",
    "MemoryScheduler",
    "ReviewOutcome",
    "classify_stage",
    "mastery_stage",
    "recommend_cue_level",
    "update_accuracy",
]
