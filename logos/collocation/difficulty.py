"""
Mapping corpus statistics to IRT difficulty.

Higher PMI means a more predictable pairing and an easier task; more
frequent words are easier. Both are mapped to the logit scale [-3, +3]
and shifted by a task-type modifier.
"""

from __future__ import annotations

from enum import Enum

PMI_MIN = -2.0
PMI_MAX = 10.0


class TaskType(str, Enum):
    RECOGNITION = "recognition"
    RECALL_CUED = "recall_cued"
    RECALL_FREE = "recall_free"
    PRODUCTION = "production"
    TIMED = "timed"


TASK_MODIFIERS = {
    TaskType.RECOGNITION: -0.5,
    TaskType.RECALL_CUED: 0.0,
    TaskType.RECALL_FREE: 0.5,
    TaskType.PRODUCTION: 1.0,
    TaskType.TIMED: 0.3,
}


def _to_logit(base: float) -> float:
    return (base - 0.5) * 6.0


def pmi_to_difficulty(pmi: float, task_type: TaskType | str = TaskType.RECALL_CUED) -> float:
    """IRT difficulty of a collocation task from its PMI (typical range -2..10)."""
    base = 1.0 - (pmi - PMI_MIN) / (PMI_MAX - PMI_MIN)
    base = max(0.0, min(1.0, base))
    return _to_logit(base) + TASK_MODIFIERS[TaskType(task_type)]


def frequency_to_difficulty(frequency: float, task_type: TaskType | str = TaskType.RECALL_CUED) -> float:
    """IRT difficulty of a single-word task from normalized frequency (1 = most common)."""
    base = 1.0 - max(0.0, min(1.0, frequency))
    return _to_logit(base) + TASK_MODIFIERS[TaskType(task_type)]
