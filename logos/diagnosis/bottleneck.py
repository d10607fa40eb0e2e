"""
Cascading bottleneck detection.

Processability ordering: PHON -> MORPH -> LEX -> SYNT -> PRAG. An upstream
deficit shows up as errors downstream too, so the detector looks for the
most upstream component whose error rate is both high in absolute terms
and clearly above every downstream component's rate.

Algorithm:
1. Per-component error rate over the recent window.
2. Drop components with fewer than `min_samples` exposures.
3. A component qualifies when
       rate > error_threshold  and
       rate >= max(downstream rates) + downstream_margin
4. The most upstream qualifier is the primary bottleneck.
5. Confidence = sample factor * (0.5 + 0.5 * margin strength).

No qualifier means no primary bottleneck and confidence 0.

Errors that carry content are also grouped into coarse per-component
patterns (th-sounds, -ing endings, relative clauses, ...) for the evidence.
"""

from __future__ import annotations

import re
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger

from config import get_settings
from logos.core.components import COMPONENT_NAMES, COMPONENT_SHORT, DEFAULT_CASCADE, CascadeOrder, ComponentType
from logos.core.errors import ConfigurationError
from logos.core.records import ResponseRecord, parse_response

RATE_EPSILON = 1e-12
AFFECTED_FRACTION = 0.67


@dataclass(frozen=True)
class BottleneckConfig:
    """Detection thresholds plus the cascade being tested."""

    min_samples: int = 10
    error_threshold: float = 0.3
    downstream_margin: float = 0.1
    confidence_samples: int = 20
    cascade: CascadeOrder = DEFAULT_CASCADE

    def __post_init__(self) -> None:
        if self.min_samples < 1:
            raise ConfigurationError("min_samples must be >= 1")
        if not 0.0 <= self.error_threshold < 1.0:
            raise ConfigurationError("error_threshold must be in [0, 1)")
        if not 0.0 <= self.downstream_margin < 1.0:
            raise ConfigurationError("downstream_margin must be in [0, 1)")
        if self.confidence_samples < 1:
            raise ConfigurationError("confidence_samples must be >= 1")

    @classmethod
    def from_settings(cls, cascade: CascadeOrder = DEFAULT_CASCADE) -> BottleneckConfig:
        return cls(**get_settings().get_bottleneck_config(), cascade=cascade)


@dataclass(frozen=True)
class ComponentErrorStats:
    """Error and exposure counts for one component over a window."""

    component: ComponentType
    errors: int
    exposures: int
    recent_errors: int = 0
    recent_exposures: int = 0

    def __post_init__(self) -> None:
        if self.exposures < 0 or self.errors < 0:
            raise ConfigurationError("Counts must be non-negative")
        if self.errors > self.exposures:
            raise ConfigurationError(
                f"{self.component.value}: errors ({self.errors}) exceed exposures ({self.exposures})"
            )

    @property
    def error_rate(self) -> float | None:
        if self.exposures == 0:
            return None
        return self.errors / self.exposures

    @property
    def improvement(self) -> float | None:
        """Overall minus recent error rate. Positive means improving."""
        if self.exposures == 0 or self.recent_exposures == 0:
            return None
        return self.errors / self.exposures - self.recent_errors / self.recent_exposures


@dataclass(frozen=True)
class ComponentDiagnosis:
    """Per-component line of a report."""

    component: ComponentType
    error_rate: float | None
    sample_size: int
    sufficient_data: bool
    qualifies: bool = False
    improvement: float | None = None
    cooccurring_errors: tuple[ComponentType, ...] = ()
    error_patterns: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "component": self.component.value,
            "error_rate": None if self.error_rate is None else round(self.error_rate, 4),
            "sample_size": self.sample_size,
            "sufficient_data": self.sufficient_data,
            "qualifies": self.qualifies,
            "improvement": None if self.improvement is None else round(self.improvement, 4),
            "cooccurring_errors": [c.value for c in self.cooccurring_errors],
            "error_patterns": list(self.error_patterns),
        }


@dataclass(frozen=True)
class BottleneckReport:
    """Diagnostic result. Recomputed per request; never the source of truth."""

    cascade: tuple[ComponentType, ...]
    components: tuple[ComponentDiagnosis, ...]
    primary_bottleneck: ComponentType | None
    confidence: float
    evidence: tuple[str, ...]
    recommendation: str
    affected_components: tuple[ComponentType, ...] = ()

    def component(self, component: ComponentType) -> ComponentDiagnosis | None:
        for diagnosis in self.components:
            if diagnosis.component == component:
                return diagnosis
        return None

    def summary(self) -> str:
        """One-line label, e.g. "pronunciation (80% errors)"."""
        if self.primary_bottleneck is None:
            return "No bottleneck detected"
        diagnosis = self.component(self.primary_bottleneck)
        label = COMPONENT_SHORT[self.primary_bottleneck]
        if diagnosis is None or diagnosis.error_rate is None:
            return f"Bottleneck: {label}"
        return f"{label} ({round(diagnosis.error_rate * 100)}% errors)"

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "cascade": [c.value for c in self.cascade],
            "components": [c.to_dict() for c in self.components],
            "primary_bottleneck": self.primary_bottleneck.value if self.primary_bottleneck else None,
            "confidence": round(self.confidence, 4),
            "evidence": list(self.evidence),
            "recommendation": self.recommendation,
            "affected_components": [c.value for c in self.affected_components],
        }


# =============================================================================
# AGGREGATION
# =============================================================================


def recent_window(
    records: Iterable[ResponseRecord | dict],
    window: int | None = None,
) -> list[ResponseRecord]:
    """Validated records in time order, keeping only the last `window`."""
    parsed = sorted((parse_response(r) for r in records), key=lambda r: r.timestamp)
    if window is not None:
        parsed = parsed[-window:] if window > 0 else []
    return parsed


def aggregate_errors(
    records: Iterable[ResponseRecord | dict],
    window: int | None = None,
    recent_fraction: float = 0.25,
) -> dict[ComponentType, ComponentErrorStats]:
    """
    Per-component counts over the most recent `window` responses.

    The last `recent_fraction` of the window is also counted separately
    for the improvement trend.
    """
    parsed = recent_window(records, window)

    recent_start = int(len(parsed) * (1.0 - recent_fraction))
    totals: Counter[ComponentType] = Counter()
    errors: Counter[ComponentType] = Counter()
    recent_totals: Counter[ComponentType] = Counter()
    recent_errors: Counter[ComponentType] = Counter()

    for i, record in enumerate(parsed):
        totals[record.component] += 1
        if not record.correct:
            errors[record.component] += 1
        if i >= recent_start:
            recent_totals[record.component] += 1
            if not record.correct:
                recent_errors[record.component] += 1

    return {
        component: ComponentErrorStats(
            component=component,
            errors=errors[component],
            exposures=totals[component],
            recent_errors=recent_errors[component],
            recent_exposures=recent_totals[component],
        )
        for component in totals
    }


def find_cooccurring_errors(
    target: ComponentType,
    records: Iterable[ResponseRecord],
    min_count: int = 2,
) -> tuple[ComponentType, ...]:
    """Components that fail in the same sessions as `target`, most frequent first."""
    session_errors: dict[str, set[ComponentType]] = defaultdict(set)
    for record in records:
        if not record.correct and record.session_id:
            session_errors[record.session_id].add(record.component)

    counts: Counter[ComponentType] = Counter()
    for components in session_errors.values():
        if target in components:
            for component in components:
                if component != target:
                    counts[component] += 1

    ranked = sorted(
        (c for c, n in counts.items() if n >= min_count),
        key=lambda c: (-counts[c], c.value),
    )
    return tuple(ranked)


# =============================================================================
# ERROR PATTERNS
# =============================================================================

_VOWEL_PAIR = re.compile(r"[aeiou]{2}")
_CONDITIONAL = re.compile(r"\b(if|when)\b")
_RELATIVE = re.compile(r"\b(who|which)\b")


def extract_error_pattern(component: ComponentType, content: str) -> str:
    """Coarse pattern label for one piece of failed content."""
    text = content.strip().lower()

    if component == ComponentType.PHON:
        if "th" in text:
            return "th-sounds"
        if "r" in text or "l" in text:
            return "r/l distinction"
        if _VOWEL_PAIR.search(text):
            return "vowel combinations"
        return "other pronunciation"

    if component == ComponentType.MORPH:
        if text.endswith("ing"):
            return "-ing endings"
        if text.endswith("ed"):
            return "-ed endings"
        if text.endswith("tion"):
            return "-tion nominalizations"
        if text.endswith("s"):
            return "plurals/3rd person"
        return "other word forms"

    if component == ComponentType.LEX:
        if len(text) > 10:
            return "complex vocabulary"
        if len(text) <= 4:
            return "basic vocabulary"
        return "intermediate vocabulary"

    if component == ComponentType.SYNT:
        if _CONDITIONAL.search(text):
            return "conditional clauses"
        if _RELATIVE.search(text):
            return "relative clauses"
        if "," in text:
            return "compound sentences"
        return "simple sentence patterns"

    if component == ComponentType.PRAG:
        if "please" in text or "could" in text:
            return "politeness markers"
        if "sorry" in text or "excuse" in text:
            return "apology patterns"
        return "discourse markers"

    return "unclassified"


def analyze_error_patterns(
    component: ComponentType,
    records: Iterable[ResponseRecord],
    min_count: int = 2,
    limit: int = 5,
) -> tuple[str, ...]:
    """
    Recurring patterns among a component's errors, most frequent first.

    Only errors that carry content are classified. Each entry reads
    "label (Nx)".
    """
    counts: Counter[str] = Counter(
        extract_error_pattern(component, r.content)
        for r in records
        if r.component == component and not r.correct and r.content.strip()
    )
    ranked = sorted(
        ((label, n) for label, n in counts.items() if n >= min_count),
        key=lambda item: (-item[1], item[0]),
    )
    return tuple(f"{label} ({n}x)" for label, n in ranked[:limit])


# =============================================================================
# DETECTOR
# =============================================================================


class BottleneckDetector:
    """
    Finds the most upstream component that explains downstream struggle.

    Usage:
        detector = BottleneckDetector()
        report = detector.analyze(records)
        report.primary_bottleneck, report.confidence
    """

    def __init__(self, config: BottleneckConfig | None = None):
        self.config = config or BottleneckConfig.from_settings()

    @property
    def cascade(self) -> CascadeOrder:
        return self.config.cascade

    def analyze(
        self,
        records: Sequence[ResponseRecord | dict],
        window: int | None = None,
    ) -> BottleneckReport:
        """Aggregate raw responses and diagnose."""
        recent = recent_window(records, window)
        return self.detect(aggregate_errors(recent), records=recent)

    def detect(
        self,
        stats: Mapping[ComponentType, ComponentErrorStats] | Iterable[ComponentErrorStats],
        records: Sequence[ResponseRecord] | None = None,
    ) -> BottleneckReport:
        """Diagnose from pre-aggregated per-component counts."""
        if isinstance(stats, Mapping):
            by_component = dict(stats)
        else:
            by_component = {s.component: s for s in stats}

        unknown = [c for c in by_component if c not in self.cascade.components]
        if unknown:
            logger.debug(f"Ignoring components outside the cascade: {[c.value for c in unknown]}")

        cfg = self.config
        rates: dict[ComponentType, float] = {}
        for component in self.cascade:
            s = by_component.get(component)
            if s is not None and s.exposures >= cfg.min_samples and s.error_rate is not None:
                rates[component] = s.error_rate

        qualifiers: list[ComponentType] = []
        for component in self.cascade:
            if component in rates and self._qualifies(component, rates):
                qualifiers.append(component)

        primary = qualifiers[0] if qualifiers else None

        diagnoses = tuple(
            self._diagnose_component(component, by_component.get(component), rates, qualifiers, records)
            for component in self.cascade
        )

        if primary is None:
            report = BottleneckReport(
                cascade=self.cascade.components,
                components=diagnoses,
                primary_bottleneck=None,
                confidence=0.0,
                evidence=tuple(self._evidence_lines(diagnoses)),
                recommendation=self._no_bottleneck_recommendation(rates),
            )
            logger.debug("No primary bottleneck detected")
            return report

        confidence = self._confidence(primary, rates, by_component[primary].exposures)
        affected = tuple(
            c for c in self.cascade.downstream_of(primary)
            if c in rates and rates[c] >= cfg.error_threshold * AFFECTED_FRACTION
        )

        report = BottleneckReport(
            cascade=self.cascade.components,
            components=diagnoses,
            primary_bottleneck=primary,
            confidence=confidence,
            evidence=tuple(self._evidence_lines(diagnoses)),
            recommendation=self._recommendation(primary, rates[primary], affected, by_component[primary]),
            affected_components=affected,
        )
        logger.debug(
            f"Primary bottleneck {primary.value} (rate={rates[primary]:.2f}, confidence={confidence:.2f})"
        )
        return report

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _max_downstream(self, component: ComponentType, rates: Mapping[ComponentType, float]) -> float | None:
        downstream = [rates[c] for c in self.cascade.downstream_of(component) if c in rates]
        return max(downstream) if downstream else None

    def _qualifies(self, component: ComponentType, rates: Mapping[ComponentType, float]) -> bool:
        rate = rates[component]
        if rate <= self.config.error_threshold:
            return False
        max_down = self._max_downstream(component, rates)
        if max_down is None:
            return True
        return rate + RATE_EPSILON >= max_down + self.config.downstream_margin

    def _confidence(self, component: ComponentType, rates: Mapping[ComponentType, float], samples: int) -> float:
        cfg = self.config
        rate = rates[component]
        sample_factor = min(1.0, samples / cfg.confidence_samples)

        threshold_strength = (rate - cfg.error_threshold) / (1.0 - cfg.error_threshold)
        max_down = self._max_downstream(component, rates)
        if max_down is None:
            strength = threshold_strength
        else:
            margin_strength = (rate - max_down - cfg.downstream_margin) / (1.0 - cfg.downstream_margin)
            strength = (threshold_strength + margin_strength) / 2.0
        strength = max(0.0, min(1.0, strength))

        return max(0.0, min(1.0, sample_factor * (0.5 + 0.5 * strength)))

    def _diagnose_component(
        self,
        component: ComponentType,
        stats: ComponentErrorStats | None,
        rates: Mapping[ComponentType, float],
        qualifiers: Sequence[ComponentType],
        records: Sequence[ResponseRecord] | None,
    ) -> ComponentDiagnosis:
        if stats is None:
            return ComponentDiagnosis(component=component, error_rate=None, sample_size=0, sufficient_data=False)
        return ComponentDiagnosis(
            component=component,
            error_rate=stats.error_rate,
            sample_size=stats.exposures,
            sufficient_data=component in rates,
            qualifies=component in qualifiers,
            improvement=stats.improvement,
            cooccurring_errors=find_cooccurring_errors(component, records) if records else (),
            error_patterns=analyze_error_patterns(component, records) if records else (),
        )

    def _evidence_lines(self, diagnoses: Sequence[ComponentDiagnosis]) -> list[str]:
        lines = []
        for d in diagnoses:
            if d.error_rate is None:
                lines.append(f"{d.component.value}: no responses in window")
                continue
            line = f"{d.component.value}: {d.error_rate:.0%} errors over {d.sample_size} responses"
            if not d.sufficient_data:
                line += f" (below minimum of {self.config.min_samples}, excluded)"
            elif d.qualifies:
                line += " (exceeds threshold and downstream margin)"
            if d.improvement is not None and abs(d.improvement) >= 0.05:
                trend = "improving" if d.improvement > 0 else "worsening"
                line += f", {trend} recently"
            if d.cooccurring_errors:
                line += f", co-occurs with {', '.join(c.value for c in d.cooccurring_errors)}"
            if d.error_patterns:
                line += f"; patterns: {', '.join(d.error_patterns[:3])}"
            lines.append(line)
        return lines

    def _recommendation(
        self,
        primary: ComponentType,
        rate: float,
        affected: Sequence[ComponentType],
        stats: ComponentErrorStats,
    ) -> str:
        text = f"Focus on {COMPONENT_NAMES[primary]} ({round(rate * 100)}% error rate)."
        if affected:
            text += f" Improving this will also help with {', '.join(COMPONENT_SHORT[c] for c in affected)}."
        improvement = stats.improvement
        if improvement is not None and improvement > 0.05:
            text += " Recent results show improvement; keep the current focus."
        elif improvement is not None and improvement < -0.05:
            text += " Recent results are getting worse; slow down and add scaffolding."
        return text

    def _no_bottleneck_recommendation(self, rates: Mapping[ComponentType, float]) -> str:
        if not rates:
            return (
                f"Need more data for analysis (each component needs at least "
                f"{self.config.min_samples} responses)."
            )
        return "No significant bottleneck detected. Continue balanced practice across all areas."
