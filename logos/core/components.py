"""
Linguistic components and the processability cascade.

The cascade encodes the acquisition-order theory used by bottleneck
diagnosis: upstream competence gates downstream competence. It is a single
ordered value so alternate orderings can be swapped in for testing.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from logos.core.errors import ConfigurationError


class ComponentType(str, Enum):
    """The five linguistic components tracked per learner."""

    PHON = "PHON"    # Phonology
    MORPH = "MORPH"  # Morphology
    LEX = "LEX"      # Lexicon
    SYNT = "SYNT"    # Syntax
    PRAG = "PRAG"    # Pragmatics

    @property
    def display_name(self) -> str:
        """Human-readable name used in recommendations."""
        return COMPONENT_NAMES[self]

    @property
    def short_name(self) -> str:
        return COMPONENT_SHORT[self]


COMPONENT_NAMES = {
    ComponentType.PHON: "Phonology (sounds and pronunciation)",
    ComponentType.MORPH: "Morphology (word forms and structure)",
    ComponentType.LEX: "Vocabulary (word meanings)",
    ComponentType.SYNT: "Syntax (sentence structure)",
    ComponentType.PRAG: "Pragmatics (context and usage)",
}

COMPONENT_SHORT = {
    ComponentType.PHON: "pronunciation",
    ComponentType.MORPH: "word forms",
    ComponentType.LEX: "vocabulary",
    ComponentType.SYNT: "grammar",
    ComponentType.PRAG: "usage",
}


@dataclass(frozen=True)
class CascadeOrder:
    """
    Ordered chain of components, foundational first.

    Errors in earlier components propagate to later ones.
    """

    components: tuple[ComponentType, ...]

    def __post_init__(self) -> None:
        if not self.components:
            raise ConfigurationError("Cascade order must contain at least one component")
        if len(set(self.components)) != len(self.components):
            raise ConfigurationError("Cascade order contains duplicate components")

    def __iter__(self):
        return iter(self.components)

    def __len__(self) -> int:
        return len(self.components)

    def position(self, component: ComponentType) -> int:
        """Cascade position (lower = more foundational)."""
        try:
            return self.components.index(component)
        except ValueError:
            raise ConfigurationError(f"{component} is not part of the cascade") from None

    def downstream_of(self, component: ComponentType) -> tuple[ComponentType, ...]:
        """All components that could be affected by `component`."""
        return self.components[self.position(component) + 1:]

    def upstream_of(self, component: ComponentType) -> tuple[ComponentType, ...]:
        """All components that could be root causes for `component`."""
        return self.components[:self.position(component)]

    def can_cause_errors(self, upstream: ComponentType, downstream: ComponentType) -> bool:
        return self.position(upstream) < self.position(downstream)


DEFAULT_CASCADE = CascadeOrder(
    (
        ComponentType.PHON,
        ComponentType.MORPH,
        ComponentType.LEX,
        ComponentType.SYNT,
        ComponentType.PRAG,
    )
)
