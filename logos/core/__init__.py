"""
Core Module - Shared domain types, records and errors.

All component packages (ability, memory, collocation, priority, diagnosis)
import from logos.core rather than redefining shared concepts.
"""

from logos.core.components import (
    COMPONENT_NAMES,
    DEFAULT_CASCADE,
    CascadeOrder,
    ComponentType,
)
from logos.core.errors import (
    ConcurrencyConflictError,
    ConfigurationError,
    IndexBuildCancelled,
    InputValidationError,
    LogosError,
)
from logos.core.records import (
    CandidateObject,
    ResponseRecord,
    parse_candidate,
    parse_response,
)

__all__ = [
    # Components
    "ComponentType",
    "CascadeOrder",
    "DEFAULT_CASCADE",
    "COMPONENT_NAMES",
    # Records
    "ResponseRecord",
    "CandidateObject",
    "parse_response",
    "parse_candidate",
    # Errors
    "LogosError",
    "InputValidationError",
    "ConfigurationError",
    "ConcurrencyConflictError",
    "IndexBuildCancelled",
]
