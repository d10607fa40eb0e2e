"""
Engine error types.

Fatal errors are raised before any state is touched. Soft conditions
(insufficient data, non-convergence) are never raised: they are reported as
flags on the returned result and logged.
"""
from __future__ import annotations

from typing import Any


class LogosError(Exception):
    """Base class for all engine errors."""


class InputValidationError(LogosError):
    """A response or candidate record from a collaborator is malformed."""

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def fields(self) -> list[str]:
        """Dotted names of the offending fields."""
        return [".".join(str(p) for p in err.get("loc", ())) for err in self.errors]


class ConfigurationError(LogosError):
    """Model parameters are invalid (e.g. negative discrimination)."""


class ConcurrencyConflictError(LogosError):
    """A snapshot was modified by another writer since it was loaded."""

    def __init__(self, kind: str, key: tuple[str, ...], expected_version: int):
        super().__init__(
            f"{kind} {'/'.join(key)} changed since version {expected_version}; reload and retry"
        )
        self.kind = kind
        self.key = key
        self.expected_version = expected_version


class IndexBuildCancelled(LogosError):
    """A collocation indexing job was cancelled before completion."""
