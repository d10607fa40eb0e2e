"""
Diagnosis Module - Cascading bottleneck detection across linguistic components.
"""

from logos.diagnosis.bottleneck import (
    BottleneckConfig,
    BottleneckDetector,
    BottleneckReport,
    ComponentDiagnosis,
    ComponentErrorStats,
    aggregate_errors,
    analyze_error_patterns,
    extract_error_pattern,
    find_cooccurring_errors,
    recent_window,
)

__all__ = [
    "BottleneckConfig",
    "BottleneckDetector",
    "BottleneckReport",
    "ComponentDiagnosis",
    "ComponentErrorStats",
    "aggregate_errors",
    "analyze_error_patterns",
    "extract_error_pattern",
    "find_cooccurring_errors",
    "recent_window",
]
