"""
Collocation Module - Co-occurrence statistics, PMI and significance.
"""

from logos.collocation.builder import (
    CollocationIndexBuilder,
    CollocationIndexHandle,
    build_index,
    tokenize,
)
from logos.collocation.difficulty import (
    TaskType,
    frequency_to_difficulty,
    pmi_to_difficulty,
)
from logos.collocation.pmi import (
    CollocationIndex,
    CollocationStatistics,
    PMIResult,
    log_likelihood_ratio,
    pair_key,
)

__all__ = [
    "CollocationIndex",
    "CollocationIndexBuilder",
    "CollocationIndexHandle",
    "CollocationStatistics",
    "PMIResult",
    "TaskType",
    "build_index",
    "frequency_to_difficulty",
    "log_likelihood_ratio",
    "pair_key",
    "pmi_to_difficulty",
    "tokenize",
]
